"""Cooldown policy for water level alerts."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

ALERT_COOLDOWN = timedelta(minutes=5)


class AlertDebouncer:
    """Suppresses repeat alerts until the cooldown has elapsed.

    The cooldown is measured from the last *confirmed* delivery. A failed
    delivery leaves the state untouched so the next qualifying reading tries
    again straight away. Expiry is checked lazily whenever a decision is
    requested; nothing runs in the background.

    The debouncer itself is not thread-safe. Callers hold their own lock
    around ``try_reserve`` / ``confirm`` / ``release``.
    """

    def __init__(self, cooldown: timedelta = ALERT_COOLDOWN) -> None:
        self.cooldown = cooldown
        self.last_alert_at: Optional[datetime] = None
        self._reserved = False

    @property
    def reserved(self) -> bool:
        return self._reserved

    def should_alert(self, now: datetime) -> bool:
        if self.last_alert_at is None:
            return True
        return now - self.last_alert_at >= self.cooldown

    def mark_delivered(self, now: datetime) -> None:
        self.last_alert_at = now

    def remaining(self, now: datetime) -> timedelta:
        if self.should_alert(now):
            return timedelta(0)
        assert self.last_alert_at is not None
        return self.cooldown - (now - self.last_alert_at)

    def try_reserve(self, now: datetime) -> bool:
        """Claim the single in-flight delivery slot if an alert is due."""
        if self._reserved or not self.should_alert(now):
            return False
        self._reserved = True
        return True

    def confirm(self, now: datetime) -> None:
        self.mark_delivered(now)
        self._reserved = False

    def release(self) -> None:
        self._reserved = False
