"""
External-call budget shared by every collaborator that costs money.

Inference, translation and Textract calls all draw from one process-wide
allowance. A call is counted when it is attempted, whether or not it
succeeds.
"""
import logging
from collections import Counter
from datetime import datetime
from threading import Lock
from typing import Dict, Optional, Tuple

from form_assistant.config import Config

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Combined call budget across services.

    Args:
        max_total_calls: Allowance for the process lifetime (Config.MAX_TOTAL_CALLS if None)
        enabled: Whether the allowance is enforced (Config.ENABLE_RATE_LIMITING if None)
    """

    def __init__(self, max_total_calls: Optional[int] = None, enabled: Optional[bool] = None):
        self.max_total_calls = max_total_calls or Config.MAX_TOTAL_CALLS
        self.enabled = Config.ENABLE_RATE_LIMITING if enabled is None else enabled
        self._calls: Counter = Counter()
        self._last_call: Dict[str, datetime] = {}
        self.lock = Lock()
        self.start_time = datetime.now()

    @property
    def remaining(self) -> int:
        with self.lock:
            return max(0, self.max_total_calls - sum(self._calls.values()))

    def can_make_call(self, service: str) -> Tuple[bool, str]:
        """
        Check whether one more call to `service` fits in the budget.

        Returns:
            Tuple of (can_call, reason)
        """
        if not self.enabled:
            return True, "OK"

        with self.lock:
            used = sum(self._calls.values())
            by_service = self._calls[service]
        if used >= self.max_total_calls:
            return False, (
                f"Total call limit reached: {used}/{self.max_total_calls} calls across all services "
                f"({by_service} by {service})"
            )
        return True, "OK"

    def record_call(self, service: str):
        """Count one attempted call."""
        with self.lock:
            self._calls[service] += 1
            self._last_call[service] = datetime.now()
            used = sum(self._calls.values())

        if used == self.max_total_calls and self.enabled:
            logger.warning(f"External call budget exhausted ({used} calls); further calls will be refused")
        else:
            logger.debug(f"Recorded {service} call. Total calls: {used}/{self.max_total_calls}")

    def get_stats(self, service: Optional[str] = None) -> Dict:
        """
        Budget usage, for one service or overall.

        Args:
            service: Optional service name. If None, returns combined stats.
        """
        with self.lock:
            if service:
                last_call = self._last_call.get(service)
                return {
                    'service': service,
                    'total_calls': self._calls[service],
                    'last_call': last_call.isoformat() if last_call else None,
                }

            used = sum(self._calls.values())
            return {
                'total_calls': used,
                'max_calls': self.max_total_calls,
                'remaining_calls': max(0, self.max_total_calls - used),
                'calls_by_service': {name: count for name, count in self._calls.items() if count},
                'enabled': self.enabled,
                'session_duration': (datetime.now() - self.start_time).total_seconds()
            }

    def reset(self):
        """Forget all recorded calls."""
        with self.lock:
            self._calls.clear()
            self._last_call.clear()
            self.start_time = datetime.now()
        logger.info("Rate limiter reset")
