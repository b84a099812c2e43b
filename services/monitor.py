"""Ingestion pipeline tying the event log, cooldown policy and notifier together."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

from datastore.event_store import EventStore
from models.records import MotorState, Reading
from services.debouncer import AlertDebouncer
from services.notifier import ALERT_THRESHOLD_CM, EmailNotifier, Notifier, NotifierError
from settings import get_settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertOutcome(str, Enum):
    """What happened to the alert side of an ingested reading."""

    normal = "normal"
    cooldown = "cooldown"
    in_flight = "in_flight"
    timed_out = "timed_out"
    delivered = "delivered"
    failed = "failed"


@dataclass(frozen=True)
class NotifierStatus:
    ok: bool
    config: Dict[str, Optional[str]]
    message: Optional[str] = None


class DrainageMonitor:
    """Owns the reading log and alert state for one process.

    Appending a reading and deciding whether to alert happen under one lock.
    Delivery runs outside it, on a worker thread with a bounded wait, while
    the debouncer holds a reservation so no second delivery can start.
    """

    def __init__(
        self,
        store: EventStore,
        debouncer: AlertDebouncer,
        notifier: Notifier,
        delivery_timeout: float = 15.0,
        clock: Clock = _utcnow,
    ) -> None:
        self.store = store
        self.debouncer = debouncer
        self.notifier = notifier
        self.delivery_timeout = delivery_timeout
        self.clock = clock
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="alert")
        self._lock = Lock()

    def record_reading(
        self, distance: float, motor: MotorState
    ) -> Tuple[Reading, AlertOutcome]:
        reading = Reading(distance=distance, motor=motor, timestamp=self.clock())
        return reading, self.ingest(reading)

    def ingest(self, reading: Reading) -> AlertOutcome:
        with self._lock:
            self.store.record(reading)
            logger.info(
                "Received reading",
                extra={"distance": reading.distance, "motor": reading.motor.value},
            )
            if reading.distance >= ALERT_THRESHOLD_CM:
                return AlertOutcome.normal
            now = reading.timestamp
            if not self.debouncer.try_reserve(now):
                return self._suppressed(now)

        logger.warning(
            "ALERT: distance below threshold",
            extra={"distance": reading.distance, "motor": reading.motor.value},
        )
        outcome = AlertOutcome.failed
        try:
            outcome = self._deliver(reading, now)
        finally:
            # A timed-out send still running settles the reservation itself.
            if outcome is not AlertOutcome.timed_out:
                self._settle(now, outcome is AlertOutcome.delivered)

        logger.info("Alert attempt finished", extra={"outcome": outcome.value})
        return outcome

    def summary(self) -> Tuple[int, Optional[Reading]]:
        return self.store.snapshot()

    def check_notifier(self) -> NotifierStatus:
        config = self.notifier.describe()
        try:
            self.notifier.verify()
        except NotifierError as exc:
            return NotifierStatus(ok=False, config=config, message=str(exc))
        return NotifierStatus(ok=True, config=config)

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _suppressed(self, now: datetime) -> AlertOutcome:
        if self.debouncer.reserved:
            logger.info("Alert delivery already in progress; skipping")
            return AlertOutcome.in_flight
        remaining = self.debouncer.remaining(now)
        logger.info(
            "Alert cooldown active. Next alert possible in %d minutes",
            round(remaining.total_seconds() / 60),
            extra={"cooldown_remaining_s": int(remaining.total_seconds())},
        )
        return AlertOutcome.cooldown

    def _settle(self, now: datetime, delivered: bool) -> None:
        with self._lock:
            if delivered:
                self.debouncer.confirm(now)
            else:
                self.debouncer.release()

    def _settle_late(self, future: "Future[bool]", now: datetime) -> None:
        delivered = False
        if not future.cancelled():
            try:
                delivered = bool(future.result())
            except Exception as exc:
                logger.error("Late alert delivery raised", extra={"reason": str(exc)})
        self._settle(now, delivered)
        outcome = AlertOutcome.delivered if delivered else AlertOutcome.failed
        logger.info("Timed-out alert delivery finished", extra={"outcome": outcome.value})

    def _deliver(self, reading: Reading, now: datetime) -> AlertOutcome:
        try:
            future = self.executor.submit(
                self.notifier.deliver, reading.distance, reading.motor
            )
        except RuntimeError as exc:
            logger.error("Alert delivery could not be scheduled", extra={"reason": str(exc)})
            return AlertOutcome.failed
        try:
            delivered = bool(future.result(timeout=self.delivery_timeout))
        except FutureTimeoutError:
            if future.cancel():
                logger.warning(
                    "Alert delivery timed out before starting",
                    extra={"timeout_s": self.delivery_timeout},
                )
                return AlertOutcome.failed
            logger.warning(
                "Alert delivery timed out; holding reservation until it finishes",
                extra={"timeout_s": self.delivery_timeout},
            )
            future.add_done_callback(lambda done: self._settle_late(done, now))
            return AlertOutcome.timed_out
        except Exception as exc:
            logger.exception("Alert delivery raised", extra={"reason": str(exc)})
            return AlertOutcome.failed
        return AlertOutcome.delivered if delivered else AlertOutcome.failed


@lru_cache
def build_default_monitor() -> DrainageMonitor:
    """Factory that wires the monitor with the SMTP notifier."""
    settings = get_settings()
    return DrainageMonitor(
        store=EventStore(),
        debouncer=AlertDebouncer(),
        notifier=EmailNotifier.from_settings(settings),
        delivery_timeout=settings.notify_timeout,
    )
