import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from datastore.event_store import EventStore
from models.records import MotorState
from services.debouncer import AlertDebouncer
from services.monitor import AlertOutcome, DrainageMonitor
from services.notifier import NotifierError

_T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = _T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, offset: timedelta) -> None:
        self.now = _T0 + offset


class RecordingNotifier:
    def __init__(self, results: Optional[List[bool]] = None) -> None:
        self.results = list(results or [])
        self.calls: List[Tuple[float, MotorState]] = []
        self.verify_error: Optional[str] = None

    def deliver(self, distance: float, motor: MotorState) -> bool:
        self.calls.append((distance, motor))
        return self.results.pop(0) if self.results else True

    def verify(self) -> None:
        if self.verify_error:
            raise NotifierError(self.verify_error)

    def describe(self) -> Dict[str, Optional[str]]:
        return {"service": "test", "from": "sensor@example.com", "to": "ops@example.com"}


class BlockingNotifier(RecordingNotifier):
    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()
        self.result = True

    def deliver(self, distance: float, motor: MotorState) -> bool:
        self.calls.append((distance, motor))
        self.started.set()
        self.release.wait(timeout=5)
        return self.result


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


def _monitor(notifier, clock: FakeClock, timeout: float = 5.0) -> DrainageMonitor:
    return DrainageMonitor(
        store=EventStore(),
        debouncer=AlertDebouncer(),
        notifier=notifier,
        delivery_timeout=timeout,
        clock=clock,
    )


def test_readings_at_or_above_threshold_never_notify(clock: FakeClock) -> None:
    notifier = RecordingNotifier()
    monitor = _monitor(notifier, clock)

    try:
        outcomes = [monitor.record_reading(d, MotorState.on)[1] for d in (200, 250, 999.5)]
    finally:
        monitor.shutdown()

    assert outcomes == [AlertOutcome.normal] * 3
    assert notifier.calls == []
    assert monitor.debouncer.last_alert_at is None


def test_threshold_and_cooldown_scenario(clock: FakeClock) -> None:
    notifier = RecordingNotifier()
    monitor = _monitor(notifier, clock)
    schedule = [
        (timedelta(0), 250),
        (timedelta(seconds=1), 150),
        (timedelta(minutes=1), 140),
        (timedelta(minutes=6), 130),
    ]

    outcomes = []
    try:
        for offset, distance in schedule:
            clock.set(offset)
            outcomes.append(monitor.record_reading(distance, MotorState.off)[1])
    finally:
        monitor.shutdown()

    assert outcomes == [
        AlertOutcome.normal,
        AlertOutcome.delivered,
        AlertOutcome.cooldown,
        AlertOutcome.delivered,
    ]
    assert [distance for distance, _ in notifier.calls] == [150, 130]
    assert monitor.debouncer.last_alert_at == _T0 + timedelta(minutes=6)
    assert monitor.store.count() == 4


def test_alert_allowed_exactly_at_cooldown_boundary(clock: FakeClock) -> None:
    notifier = RecordingNotifier()
    monitor = _monitor(notifier, clock)

    try:
        monitor.record_reading(100, MotorState.on)
        clock.set(timedelta(minutes=5))
        _, outcome = monitor.record_reading(100, MotorState.on)
    finally:
        monitor.shutdown()

    assert outcome is AlertOutcome.delivered
    assert len(notifier.calls) == 2


def test_failed_delivery_does_not_arm_cooldown(clock: FakeClock) -> None:
    notifier = RecordingNotifier(results=[False, True])
    monitor = _monitor(notifier, clock)

    try:
        _, first = monitor.record_reading(120, MotorState.on)
        assert monitor.debouncer.last_alert_at is None
        assert monitor.debouncer.reserved is False

        clock.set(timedelta(seconds=2))
        _, second = monitor.record_reading(110, MotorState.on)
    finally:
        monitor.shutdown()

    assert first is AlertOutcome.failed
    assert second is AlertOutcome.delivered
    assert monitor.debouncer.last_alert_at == _T0 + timedelta(seconds=2)
    assert monitor.store.count() == 2


def test_delivery_exception_is_treated_as_failure(clock: FakeClock) -> None:
    class ExplodingNotifier(RecordingNotifier):
        def deliver(self, distance: float, motor: MotorState) -> bool:
            raise RuntimeError("transport exploded")

    monitor = _monitor(ExplodingNotifier(), clock)

    try:
        _, outcome = monitor.record_reading(50, MotorState.off)
    finally:
        monitor.shutdown()

    assert outcome is AlertOutcome.failed
    assert monitor.debouncer.should_alert(clock()) is True
    assert monitor.store.count() == 1


def _drain(monitor: DrainageMonitor) -> None:
    # The single worker runs done-callbacks before picking up the next item.
    monitor.executor.submit(lambda: None).result(timeout=2)


def test_timed_out_delivery_holds_reservation_until_it_finishes(clock: FakeClock) -> None:
    notifier = BlockingNotifier()
    monitor = _monitor(notifier, clock, timeout=0.2)
    outcomes = []

    try:
        for offset, distance in ((timedelta(0), 100), (timedelta(seconds=1), 101),
                                 (timedelta(seconds=2), 102)):
            clock.set(offset)
            outcomes.append(monitor.record_reading(distance, MotorState.on)[1])
        assert monitor.debouncer.reserved is True
        assert monitor.debouncer.last_alert_at is None

        notifier.release.set()
        _drain(monitor)
        assert monitor.debouncer.reserved is False
        assert monitor.debouncer.last_alert_at == _T0

        clock.set(timedelta(seconds=10))
        _, late = monitor.record_reading(90, MotorState.on)
    finally:
        notifier.release.set()
        monitor.shutdown()

    assert outcomes == [AlertOutcome.timed_out, AlertOutcome.in_flight, AlertOutcome.in_flight]
    assert late is AlertOutcome.cooldown
    assert [distance for distance, _ in notifier.calls] == [100]


def test_timed_out_delivery_that_fails_releases_for_retry(clock: FakeClock) -> None:
    notifier = BlockingNotifier()
    notifier.result = False
    monitor = _monitor(notifier, clock, timeout=0.2)

    try:
        _, first = monitor.record_reading(100, MotorState.on)
        notifier.release.set()
        _drain(monitor)
        assert monitor.debouncer.reserved is False
        assert monitor.debouncer.last_alert_at is None

        notifier.result = True
        clock.set(timedelta(seconds=5))
        _, retry = monitor.record_reading(95, MotorState.on)
    finally:
        notifier.release.set()
        monitor.shutdown()

    assert first is AlertOutcome.timed_out
    assert retry is AlertOutcome.delivered
    assert monitor.debouncer.last_alert_at == _T0 + timedelta(seconds=5)
    assert len(notifier.calls) == 2


def test_unschedulable_delivery_releases_reservation(clock: FakeClock) -> None:
    notifier = RecordingNotifier()
    monitor = _monitor(notifier, clock)
    monitor.shutdown()

    _, outcome = monitor.record_reading(100, MotorState.on)

    assert outcome is AlertOutcome.failed
    assert monitor.debouncer.reserved is False
    assert monitor.debouncer.last_alert_at is None
    assert notifier.calls == []
    assert monitor.store.count() == 1


def test_concurrent_qualifying_readings_deliver_once(clock: FakeClock) -> None:
    notifier = BlockingNotifier()
    monitor = _monitor(notifier, clock)
    outcomes: List[AlertOutcome] = []

    def ingest() -> None:
        outcomes.append(monitor.record_reading(90, MotorState.on)[1])

    first = threading.Thread(target=ingest)
    first.start()
    try:
        assert notifier.started.wait(timeout=2)
        second = threading.Thread(target=ingest)
        second.start()
        second.join(timeout=2)
        assert outcomes == [AlertOutcome.in_flight]
    finally:
        notifier.release.set()
        first.join(timeout=2)
        monitor.shutdown()

    assert outcomes == [AlertOutcome.in_flight, AlertOutcome.delivered]
    assert len(notifier.calls) == 1
    assert monitor.store.count() == 2


def test_check_notifier_reports_status(clock: FakeClock) -> None:
    notifier = RecordingNotifier()
    monitor = _monitor(notifier, clock)

    try:
        healthy = monitor.check_notifier()
        notifier.verify_error = "Missing email configuration: EMAIL_PASS"
        broken = monitor.check_notifier()
    finally:
        monitor.shutdown()

    assert healthy.ok is True
    assert healthy.config["to"] == "ops@example.com"
    assert broken.ok is False
    assert broken.message == "Missing email configuration: EMAIL_PASS"


def test_cooldown_is_logged_with_remaining_time(clock: FakeClock, caplog) -> None:
    monitor = _monitor(RecordingNotifier(), clock)

    with caplog.at_level(logging.INFO):
        try:
            monitor.record_reading(150, MotorState.on)
            clock.set(timedelta(minutes=2))
            monitor.record_reading(140, MotorState.on)
        finally:
            monitor.shutdown()

    records = [record for record in caplog.records if record.name == "services.monitor"]
    cooldown = [r for r in records if "cooldown active" in r.getMessage()]
    assert cooldown
    assert cooldown[0].getMessage().endswith("in 3 minutes")
    assert getattr(cooldown[0], "cooldown_remaining_s") == 180
    assert any(getattr(r, "distance", None) == 150 for r in records)
