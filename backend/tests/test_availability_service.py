from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from conftest import T0, FakeClock, make_teacher
from core.errors import ForbiddenError, NotFoundError, StorageUnavailableError, UnauthorizedError, ValidationFailedError
from models.teacher import Teacher
from services.availability import AvailabilityService, as_utc, session_seconds
from services.broadcast import BroadcastHub


class RecordingHub(BroadcastHub):
    def __init__(self) -> None:
        super().__init__()
        self.rosters: list[list[dict]] = []

    def publish_roster(self, roster):
        self.rosters.append(roster)
        return 0


@pytest.fixture()
def hub() -> RecordingHub:
    return RecordingHub()


@pytest.fixture()
def service(db, hub, clock) -> AvailabilityService:
    return AvailabilityService(db, hub=hub, clock=clock, tz=timezone.utc)


def test_scenario_open_close_reports_today_total(db, service, clock):
    teacher = make_teacher(db)

    opened = service.set_availability(teacher.id, teacher.id, True)
    assert opened.is_available is True
    assert as_utc(opened.last_available_at) == T0

    clock.advance(125)
    closed = service.set_availability(teacher.id, teacher.id, False)
    assert closed.is_available is False
    assert closed.last_available_at is None

    assert service.get_today_available_seconds(teacher.id) == 125


def test_repeated_close_does_not_double_count(db, service, clock, hub):
    teacher = make_teacher(db)
    service.set_availability(teacher.id, teacher.id, True)
    clock.advance(125)
    service.set_availability(teacher.id, teacher.id, False)
    broadcasts = len(hub.rosters)

    clock.advance(1)
    again = service.set_availability(teacher.id, teacher.id, False)

    assert again.is_available is False
    assert service.get_today_available_seconds(teacher.id) == 125
    assert len(hub.rosters) == broadcasts


def test_repeated_open_keeps_session_start(db, service, clock):
    teacher = make_teacher(db)
    service.set_availability(teacher.id, teacher.id, True)
    clock.advance(30)
    again = service.set_availability(teacher.id, teacher.id, True)

    assert as_utc(again.last_available_at) == T0
    assert service.get_today_available_seconds(teacher.id) == 0


def test_sessions_sum_independent_of_other_teachers(db, service, clock):
    ada = make_teacher(db)
    bob = make_teacher(db, name="Bob", email="bob@example.com")

    # ada: 0-100, 160-400 ; bob interleaves 50-300
    service.set_availability(ada.id, ada.id, True)
    clock.advance(50)
    service.set_availability(bob.id, bob.id, True)
    clock.advance(50)
    service.set_availability(ada.id, ada.id, False)
    clock.advance(60)
    service.set_availability(ada.id, ada.id, True)
    clock.advance(140)
    service.set_availability(bob.id, bob.id, False)
    clock.advance(100)
    service.set_availability(ada.id, ada.id, False)

    assert service.get_today_available_seconds(ada.id) == 100 + 240
    assert service.get_today_available_seconds(bob.id) == 250


def test_zero_second_session_contributes_zero(db, service):
    teacher = make_teacher(db)
    service.set_availability(teacher.id, teacher.id, True)
    service.set_availability(teacher.id, teacher.id, False)
    assert service.get_today_available_seconds(teacher.id) == 0


def test_clock_skew_clamps_to_zero(db, service, clock):
    teacher = make_teacher(db)
    service.set_availability(teacher.id, teacher.id, True)
    clock.advance(-90)
    service.set_availability(teacher.id, teacher.id, False)
    assert service.get_today_available_seconds(teacher.id) == 0


def test_session_spanning_midnight_counts_toward_end_day(db, service, clock):
    teacher = make_teacher(db)
    clock.set(datetime(2025, 3, 10, 23, 59, 0, tzinfo=timezone.utc))
    service.set_availability(teacher.id, teacher.id, True)
    clock.advance(120)
    service.set_availability(teacher.id, teacher.id, False)

    assert service.ledger.get(teacher.id, date(2025, 3, 10)) == 0
    assert service.ledger.get(teacher.id, date(2025, 3, 11)) == 120


def test_day_attribution_follows_ledger_timezone(db, hub):
    teacher = make_teacher(db)
    clock = FakeClock(datetime(2025, 3, 10, 19, 0, 0, tzinfo=timezone.utc))
    service = AvailabilityService(db, hub=hub, clock=clock, tz=ZoneInfo("Asia/Kolkata"))

    service.set_availability(teacher.id, teacher.id, True)
    clock.advance(600)
    service.set_availability(teacher.id, teacher.id, False)

    # 19:10 UTC is 00:40 the next day in India.
    assert service.ledger.get(teacher.id, date(2025, 3, 11)) == 600


def test_live_total_adds_open_session(db, service, clock):
    teacher = make_teacher(db)
    service.set_availability(teacher.id, teacher.id, True)
    clock.advance(100)
    service.set_availability(teacher.id, teacher.id, False)
    service.set_availability(teacher.id, teacher.id, True)
    clock.advance(45)

    assert service.get_today_available_seconds(teacher.id) == 100
    assert service.get_live_available_seconds(teacher.id) == 145


def test_broadcast_carries_committed_state(db, service, clock, hub):
    teacher = make_teacher(db)
    service.set_availability(teacher.id, teacher.id, True)

    assert len(hub.rosters) == 1
    (entry,) = hub.rosters[0]
    assert entry["id"] == str(teacher.id)
    assert entry["is_available"] is True
    assert "password_hash" not in entry


def test_unknown_teacher_is_not_found(service):
    missing = uuid.uuid4()
    with pytest.raises(NotFoundError):
        service.set_availability(missing, missing, True)
    with pytest.raises(NotFoundError):
        service.get_today_available_seconds(missing)


def test_caller_must_match_teacher(db, service, hub):
    ada = make_teacher(db)
    bob = make_teacher(db, name="Bob", email="bob@example.com")
    with pytest.raises(UnauthorizedError):
        service.set_availability(bob.id, ada.id, True)
    with pytest.raises(ForbiddenError):
        service.set_availability(None, ada.id, True)
    assert hub.rosters == []


@pytest.mark.parametrize("value", [1, "true", None])
def test_desired_status_must_be_boolean(db, service, value):
    teacher = make_teacher(db)
    with pytest.raises(ValidationFailedError):
        service.set_availability(teacher.id, teacher.id, value)


def test_ledger_failure_leaves_teacher_available(db, service, clock, hub, monkeypatch):
    teacher = make_teacher(db)
    service.set_availability(teacher.id, teacher.id, True)
    clock.advance(125)

    def broken(*_args, **_kwargs):
        raise OperationalError("INSERT INTO daily_time_records", {}, Exception("disk I/O error"))

    monkeypatch.setattr(service.ledger, "accumulate", broken)
    with pytest.raises(StorageUnavailableError):
        service.set_availability(teacher.id, teacher.id, False)

    db.expire_all()
    stored = db.get(Teacher, teacher.id)
    assert stored.is_available is True
    assert as_utc(stored.last_available_at) == T0
    assert len(hub.rosters) == 1

    # Retry later recomputes the whole session.
    monkeypatch.undo()
    clock.advance(5)
    service.set_availability(teacher.id, teacher.id, False)
    assert service.get_today_available_seconds(teacher.id) == 130


def test_flip_failure_rolls_back_ledger(db, service, clock, monkeypatch):
    teacher = make_teacher(db)
    service.set_availability(teacher.id, teacher.id, True)
    clock.advance(60)

    original_execute = db.execute

    def execute(statement, *args, **kwargs):
        if getattr(statement, "is_update", False):
            raise OperationalError("UPDATE teachers", {}, Exception("connection reset"))
        return original_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", execute)
    with pytest.raises(StorageUnavailableError):
        service.set_availability(teacher.id, teacher.id, False)
    monkeypatch.undo()

    assert service.get_today_available_seconds(teacher.id) == 0
    db.expire_all()
    assert db.get(Teacher, teacher.id).is_available is True


def test_concurrent_close_is_treated_as_noop(db, service, clock, hub, monkeypatch):
    teacher = make_teacher(db)
    service.set_availability(teacher.id, teacher.id, True)
    clock.advance(125)
    service.set_availability(teacher.id, teacher.id, False)
    rosters_before = len(hub.rosters)

    # A second request that read the teacher before the first one committed.
    stale = Teacher(
        id=teacher.id,
        name=teacher.name,
        email=teacher.email,
        password_hash=teacher.password_hash,
        is_available=True,
        last_available_at=T0,
    )
    real_load = service._load_for_update
    calls = {"n": 0}

    def load(teacher_id):
        calls["n"] += 1
        return stale if calls["n"] == 1 else real_load(teacher_id)

    monkeypatch.setattr(service, "_load_for_update", load)
    clock.advance(1)
    result = service.set_availability(teacher.id, teacher.id, False)

    assert result.is_available is False
    assert service.get_today_available_seconds(teacher.id) == 125
    assert len(hub.rosters) == rosters_before


def test_time_records_range_limits(db, service):
    teacher = make_teacher(db)
    with pytest.raises(ValidationFailedError):
        service.time_records(teacher.id, date(2025, 3, 10), date(2025, 3, 9))
    with pytest.raises(ValidationFailedError):
        service.time_records(teacher.id, date(2024, 1, 1), date(2025, 1, 1))
    assert service.time_records(teacher.id, date(2025, 1, 1), date(2025, 12, 31)) == []


def test_session_seconds_helper():
    start = datetime(2025, 3, 10, 9, 0, 0)
    assert session_seconds(start, T0 + timedelta(seconds=2.9)) == 2
    assert session_seconds(None, T0) == 0
