"""Best-effort publishing of the latest fix to the shared remote store."""

from __future__ import annotations

import dataclasses
import logging

from pybustrack._constants import REMOTE_KEY_TEMPLATE
from pybustrack.models.fix import PositionFix
from pybustrack.models.remote import RemoteState
from pybustrack.models.session import TrackingIdentity
from pybustrack.providers import RemoteStore

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class PublishResult:
    """Outcome of one publish attempt.

    ``ok`` is ``True`` for both a completed write and a skipped one (no
    vehicle bound). ``error`` carries the swallowed exception on failure.
    """

    ok: bool
    key: str | None = None
    skipped: bool = False
    error: Exception | None = None


class RemoteStatePublisher:
    """Overwrites the per-vehicle remote record with the latest fix.

    Every publish replaces the entire record; there is no retry and no
    queue, so a failed publish is simply lost and the next one is
    independent of it.
    """

    def __init__(self, remote: RemoteStore, *, key_template: str = REMOTE_KEY_TEMPLATE) -> None:
        self._remote = remote
        self._key_template = key_template

    def key_for(self, vehicle_id: str) -> str:
        return self._key_template.format(vehicle_id=vehicle_id)

    async def publish(self, identity: TrackingIdentity, fix: PositionFix) -> PublishResult:
        if identity.vehicle_id is None:
            return PublishResult(ok=True, skipped=True)

        key = self.key_for(identity.vehicle_id)
        record = RemoteState.from_fix(fix, bus_id=identity.vehicle_id, route_id=identity.route_id).to_record()
        try:
            await self._remote.overwrite(key, record)
        except Exception as exc:
            _logger.warning("Remote publish to %s failed: %s", key, exc)
            _logger.debug("Remote publish failure", exc_info=True)
            return PublishResult(ok=False, key=key, error=exc)

        _logger.debug("Published state for %s", key)
        return PublishResult(ok=True, key=key)
