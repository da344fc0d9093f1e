import pytest

from clinic_queue.core.errors import AlreadyActive, ValidationFailed
from clinic_queue.modules.checkin.schemas import CheckInIn
from clinic_queue.modules.checkin.service import CheckInService
from clinic_queue.modules.queue.guard import Admission, AdmissionOutcome
from clinic_queue.modules.sessions.service import resolve_identity
from clinic_queue.modules.visits.repository import VisitRepository


def student(student_id, name=None):
    return resolve_identity(None, name=name or f"Student {student_id}", student_id=student_id)


def form(severity="Medium", *symptoms, emergency=False):
    return CheckInIn(symptoms=list(symptoms) or ["headache"], severity=severity, emergency_flag=emergency)


async def test_medium_wait_grows_with_queue(session, clock):
    service = CheckInService(session, now=clock)
    for sid in ("S1", "S2", "S3"):
        await service.check_in(form("Low"), student(sid))
        clock.advance(minutes=1)

    out = await service.check_in(form("Medium"), student("S4"))

    assert out.priority == "medium"
    assert out.estimated_wait_time == 21
    assert out.queue_status == "waiting"
    assert out.recheck_in is False


async def test_flagged_emergency_jumps_to_front(session, clock):
    service = CheckInService(session, now=clock)
    await service.check_in(form("High"), student("S1"))
    clock.advance(minutes=2)
    await service.check_in(form("Medium"), student("S2"))
    clock.advance(minutes=2)

    out = await service.check_in(form("Emergency", "chest pain", emergency=True), student("S3"))

    assert out.priority == "emergency"
    assert out.estimated_wait_time == 5
    waiting = await VisitRepository(session).list_waiting()
    assert [v.student_id for v in waiting] == ["S3", "S1", "S2"]


async def test_symptoms_are_trimmed_and_blanks_dropped(session, clock):
    out = await CheckInService(session, now=clock).check_in(
        CheckInIn(symptoms=["  fever ", "", "   ", "cough"], severity="Low"), student("S1")
    )
    assert out.symptoms == ["fever", "cough"]


async def test_duplicate_within_an_hour_is_rejected_with_existing_visit(session, clock):
    service = CheckInService(session, now=clock)
    first = await service.check_in(form("Medium"), student("S7"))
    clock.advance(minutes=10)

    with pytest.raises(AlreadyActive) as exc:
        await service.check_in(form("High"), student("S7"))

    existing = exc.value.existing_visit
    assert existing["id"] == str(first.visit_id)
    assert existing["studentId"] == "S7"
    assert existing["priority"] == "medium"
    assert await VisitRepository(session).count(active_only=True) == 1


async def test_exactly_sixty_minutes_is_still_a_duplicate(session, clock):
    service = CheckInService(session, now=clock)
    await service.check_in(form(), student("S7"))
    clock.advance(minutes=60)

    with pytest.raises(AlreadyActive):
        await service.check_in(form(), student("S7"))


async def test_stale_visit_is_abandoned_on_recheck_in(session, clock):
    service = CheckInService(session, now=clock)
    old = await service.check_in(form("Low"), student("S7"))
    clock.advance(minutes=61)

    fresh = await service.check_in(form("High"), student("S7"))

    assert fresh.recheck_in is True
    assert fresh.visit_id != old.visit_id
    repo = VisitRepository(session)
    assert (await repo.get(old.visit_id)).queue_status == "abandoned"
    assert (await repo.latest_active_for("S7")).id == fresh.visit_id
    assert await repo.count(active_only=True) == 1


async def test_stale_in_progress_visit_does_not_block(session, clock):
    service = CheckInService(session, now=clock)
    old = await service.check_in(form(), student("S7"))
    repo = VisitRepository(session)
    await repo.transition(old.visit_id, ["waiting"], now=clock(), queue_status="in-progress", assigned_nurse="n1")
    await session.commit()
    clock.advance(hours=3)

    fresh = await service.check_in(form(), student("S7"))

    assert fresh.recheck_in is True
    assert (await repo.get(old.visit_id)).queue_status == "abandoned"


async def test_completed_visit_does_not_block(session, clock):
    service = CheckInService(session, now=clock)
    old = await service.check_in(form(), student("S7"))
    repo = VisitRepository(session)
    await repo.transition(old.visit_id, ["waiting"], now=clock(), queue_status="completed")
    await session.commit()
    clock.advance(minutes=5)

    fresh = await service.check_in(form(), student("S7"))
    assert fresh.recheck_in is False


async def test_double_submit_race_yields_one_visit(session, clock, monkeypatch):
    service = CheckInService(session, now=clock)
    first = await service.check_in(form(), student("S7"))

    # both requests passed the guard before either inserted
    async def admit_anyway(*args, **kwargs):
        return Admission(AdmissionOutcome.ADMIT)

    monkeypatch.setattr("clinic_queue.modules.checkin.service.admit_check_in", admit_anyway)

    with pytest.raises(AlreadyActive) as exc:
        await service.check_in(form(), student("S7"))

    assert exc.value.existing_visit["id"] == str(first.visit_id)
    assert await VisitRepository(session).count(active_only=True) == 1


@pytest.mark.parametrize("payload", [
    CheckInIn(symptoms=[], severity="Low"),
    CheckInIn(symptoms=["  "], severity="Low"),
    CheckInIn(symptoms=["fever"], severity=None),
    CheckInIn(symptoms=["fever"], severity=""),
])
async def test_invalid_forms_are_rejected(session, clock, payload):
    with pytest.raises(ValidationFailed):
        await CheckInService(session, now=clock).check_in(payload, student("S1"))
    assert await VisitRepository(session).count() == 0


async def test_missing_identity_is_rejected(session, clock):
    service = CheckInService(session, now=clock)
    with pytest.raises(ValidationFailed):
        await service.check_in(form(), None)
    with pytest.raises(ValidationFailed):
        await service.check_in(form(), student(""))


async def test_unknown_severity_checks_in_as_medium(session, clock):
    out = await CheckInService(session, now=clock).check_in(form("Critical"), student("S1"))
    assert out.priority == "medium"
    assert out.estimated_wait_time == 15


async def test_current_visit_reports_live_position(session, clock):
    service = CheckInService(session, now=clock)
    await service.check_in(form("High"), student("S1"))
    clock.advance(minutes=1)
    await service.check_in(form("Low"), student("S2"))

    current = await service.current_visit(student("S2"))

    assert current["queuePosition"] == 2
    assert current["queueStatus"] == "waiting"
    assert await service.current_visit(student("S9")) is None
