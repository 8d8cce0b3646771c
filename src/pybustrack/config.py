"""Tracker configuration for pybustrack."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pybustrack._constants import (
    ACCURACY_ALERT_THRESHOLD_M,
    ACTIVITY_HISTORY_LIMIT,
    FIX_INTERVAL_SECONDS,
    REMOTE_KEY_TEMPLATE,
)
from pybustrack.exceptions import TrackerConfigError

REMOTE_BACKENDS: frozenset[str] = frozenset({"firebase", "mqtt"})


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class MqttSettings:
    """Broker connection fields for the retained-topic remote store."""

    host: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    tls: bool = False
    keepalive: int = 60
    topic_prefix: str = "bustrack"
    client_id: str = ""
    publish_timeout: float = 10.0


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Tracker configuration.

    Parameters
    ----------
    remote_backend : str
        Remote store used for publishing: ``"firebase"`` or ``"mqtt"``.
    database_url : str or None
        Firebase Realtime Database URL
        (e.g. ``"https://example-default-rtdb.firebaseio.com"``).
        Required for the ``firebase`` backend.
    auth_token : str or None
        Database secret or ID token appended as ``?auth=`` to REST calls.
    request_timeout : float
        Total timeout in seconds for a single REST call.
    storage_path : str
        Path of the JSON file backing local key-value persistence.
    fix_interval_seconds : float
        Minimum interval requested from the location provider.
    accuracy_alert_threshold : float
        Accuracy radius in meters above which a fix is considered degraded.
    history_limit : int
        Size of the rolling activity history.
    remote_key_template : str
        Template of the per-vehicle remote key; ``{vehicle_id}`` is substituted.
    mqtt : MqttSettings
        Broker settings for the ``mqtt`` backend.
    """

    remote_backend: str = "firebase"
    database_url: str | None = None
    auth_token: str | None = None
    request_timeout: float = 15.0
    storage_path: str = "bustrack-state.json"
    fix_interval_seconds: float = FIX_INTERVAL_SECONDS
    accuracy_alert_threshold: float = ACCURACY_ALERT_THRESHOLD_M
    history_limit: int = ACTIVITY_HISTORY_LIMIT
    remote_key_template: str = REMOTE_KEY_TEMPLATE
    mqtt: MqttSettings = dataclasses.field(default_factory=MqttSettings)

    def validate(self) -> TrackerConfig:
        """Check field combinations and return ``self``.

        Raises
        ------
        TrackerConfigError
            If the configuration cannot be used to build a tracker.
        """
        if self.remote_backend not in REMOTE_BACKENDS:
            raise TrackerConfigError(
                f"remote_backend must be one of {sorted(REMOTE_BACKENDS)}, got {self.remote_backend!r}"
            )
        if self.remote_backend == "firebase" and not self.database_url:
            raise TrackerConfigError("database_url is required for the firebase backend")
        if "{vehicle_id}" not in self.remote_key_template:
            raise TrackerConfigError("remote_key_template must contain '{vehicle_id}'")
        if self.history_limit < 1:
            raise TrackerConfigError(f"history_limit must be positive, got {self.history_limit}")
        if self.fix_interval_seconds <= 0:
            raise TrackerConfigError(f"fix_interval_seconds must be positive, got {self.fix_interval_seconds}")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackerConfig:
        """Create configuration from environment variables.

        Reads optional ``BUSTRACK_*`` variables (and ``BUSTRACK_MQTT_*`` for
        the broker settings). Explicit keyword arguments override environment
        values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TrackerConfig
            Populated configuration.
        """
        env = os.environ

        mqtt_kwargs: dict[str, Any] = {}
        _ENV_MQTT_MAP = {
            "BUSTRACK_MQTT_HOST": "host",
            "BUSTRACK_MQTT_USERNAME": "username",
            "BUSTRACK_MQTT_PASSWORD": "password",
            "BUSTRACK_MQTT_TOPIC_PREFIX": "topic_prefix",
            "BUSTRACK_MQTT_CLIENT_ID": "client_id",
        }
        for env_key, field_name in _ENV_MQTT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                mqtt_kwargs[field_name] = val

        port_env = env.get("BUSTRACK_MQTT_PORT")
        if port_env is not None:
            mqtt_kwargs["port"] = int(port_env)
        keepalive_env = env.get("BUSTRACK_MQTT_KEEPALIVE")
        if keepalive_env is not None:
            mqtt_kwargs["keepalive"] = int(keepalive_env)
        publish_timeout_env = env.get("BUSTRACK_MQTT_PUBLISH_TIMEOUT")
        if publish_timeout_env is not None:
            mqtt_kwargs["publish_timeout"] = float(publish_timeout_env)
        if "BUSTRACK_MQTT_TLS" in env:
            mqtt_kwargs["tls"] = _env_bool(env.get("BUSTRACK_MQTT_TLS"), False)

        # Allow overriding broker fields via a nested dict
        mqtt_overrides = overrides.pop("mqtt", None)
        if isinstance(mqtt_overrides, dict):
            mqtt_kwargs.update(mqtt_overrides)
        elif isinstance(mqtt_overrides, MqttSettings):
            mqtt_kwargs = dataclasses.asdict(mqtt_overrides)

        mqtt = MqttSettings(**mqtt_kwargs) if mqtt_kwargs else MqttSettings()

        _ENV_CONFIG_MAP = {
            "BUSTRACK_REMOTE_BACKEND": "remote_backend",
            "BUSTRACK_DATABASE_URL": "database_url",
            "BUSTRACK_AUTH_TOKEN": "auth_token",
            "BUSTRACK_STORAGE_PATH": "storage_path",
            "BUSTRACK_REMOTE_KEY_TEMPLATE": "remote_key_template",
        }
        config_kwargs: dict[str, Any] = {"mqtt": mqtt}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # Numeric fields are parsed separately
        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "BUSTRACK_REQUEST_TIMEOUT": ("request_timeout", float),
            "BUSTRACK_FIX_INTERVAL": ("fix_interval_seconds", float),
            "BUSTRACK_ACCURACY_THRESHOLD": ("accuracy_alert_threshold", float),
            "BUSTRACK_HISTORY_LIMIT": ("history_limit", int),
        }
        for env_key, (field_name, caster) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = caster(val)
            except ValueError as exc:
                raise TrackerConfigError(f"{env_key} is not a valid {caster.__name__}: {val!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
