"""Ingestion layer.

This package contains the parsing helpers that turn raw location provider
readings into validated domain records.
"""

__all__: list[str] = []
