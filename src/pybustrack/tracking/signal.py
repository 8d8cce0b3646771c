"""GPS signal quality monitoring."""

from __future__ import annotations

import dataclasses
import logging

from pybustrack._constants import ACCURACY_ALERT_THRESHOLD_M, POOR_ACCURACY_TITLE, poor_accuracy_body
from pybustrack.models.fix import PositionFix
from pybustrack.providers import AlertProvider

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SignalReport:
    """Outcome of a signal quality check.

    ``notified`` is ``True`` only when the poor-accuracy notification was
    scheduled successfully.
    """

    degraded: bool
    accuracy: float | None = None
    notified: bool = False


def is_degraded(fix: PositionFix, threshold: float = ACCURACY_ALERT_THRESHOLD_M) -> bool:
    """Unknown accuracy is not considered degraded."""
    return fix.accuracy is not None and fix.accuracy > threshold


class SignalQualityMonitor:
    """Flags fixes with a poor accuracy radius and raises a best-effort alert."""

    def __init__(self, alerts: AlertProvider, *, threshold: float = ACCURACY_ALERT_THRESHOLD_M) -> None:
        self._alerts = alerts
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    async def evaluate(self, fix: PositionFix) -> SignalReport:
        if not is_degraded(fix, self._threshold):
            return SignalReport(degraded=False, accuracy=fix.accuracy)

        accuracy = fix.accuracy
        assert accuracy is not None  # noqa: S101
        _logger.debug("Degraded signal: accuracy=%.1fm threshold=%.1fm", accuracy, self._threshold)

        try:
            await self._alerts.haptic_warning()
        except Exception:
            _logger.debug("Haptic warning failed", exc_info=True)

        try:
            await self._alerts.schedule_notification(POOR_ACCURACY_TITLE, poor_accuracy_body(accuracy))
        except Exception:
            # Scheduling may need a permission the user never granted.
            _logger.debug("Poor accuracy notification could not be scheduled", exc_info=True)
            return SignalReport(degraded=True, accuracy=accuracy)
        return SignalReport(degraded=True, accuracy=accuracy, notified=True)
