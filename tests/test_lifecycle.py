import asyncio
import uuid

import pytest
from sqlalchemy import select

from clinic_queue.core.errors import InvalidTransition, NotFound
from clinic_queue.modules.events.outbox import EventOutbox
from clinic_queue.modules.visits.repository import VisitRepository
from clinic_queue.modules.visits.service import VisitService


class Names:
    def __init__(self, **names):
        self.names = names

    async def display_name(self, actor_id):
        return self.names.get(actor_id)


NAMES = Names(n1="Nurse One", n2="Nurse Two")


async def add_visit(session, clock, student_id="S1", **overrides):
    data = dict(
        student_id=student_id,
        name=f"Student {student_id}",
        symptoms=["fever"],
        priority="medium",
        queue_status="waiting",
        emergency_flag=False,
        estimated_wait_time=15,
        created_at=clock(),
        updated_at=clock(),
    )
    data.update(overrides)
    visit = await VisitRepository(session).create(**data)
    await session.commit()
    return visit


async def test_start_claims_waiting_visit(session, clock):
    visit = await add_visit(session, clock)
    clock.advance(minutes=3)

    started = await VisitService(session, now=clock).start(visit.id, "n1", NAMES, notes="triaged")

    assert started.queue_status == "in-progress"
    assert started.assigned_nurse == "n1"
    assert started.assigned_nurse_name == "Nurse One"
    assert started.notes == "triaged"


async def test_second_start_loses_and_keeps_first_assignment(session, clock):
    visit = await add_visit(session, clock)
    service = VisitService(session, now=clock)
    await service.start(visit.id, "n1", NAMES)

    with pytest.raises(InvalidTransition) as exc:
        await service.start(visit.id, "n2", NAMES)

    assert exc.value.current_status == "in-progress"
    refreshed = await VisitRepository(session).get(visit.id)
    assert refreshed.assigned_nurse == "n1"
    assert refreshed.assigned_nurse_name == "Nurse One"


async def test_stale_reader_cannot_overwrite_winner(session_factory, clock):
    async with session_factory() as setup:
        visit = await add_visit(setup, clock)

    async with session_factory() as nurse_a, session_factory() as nurse_b:
        seen_by_b = await VisitRepository(nurse_b).get(visit.id)
        assert seen_by_b.queue_status == "waiting"

        await VisitService(nurse_a, now=clock).start(visit.id, "n1", NAMES)

        with pytest.raises(InvalidTransition):
            await VisitService(nurse_b, now=clock).start(visit.id, "n2", NAMES)

    async with session_factory() as check:
        final = await VisitRepository(check).get(visit.id)
        assert final.queue_status == "in-progress"
        assert final.assigned_nurse == "n1"


async def test_concurrent_starts_have_exactly_one_winner(session_factory, clock):
    async with session_factory() as setup:
        visit = await add_visit(setup, clock)

    async def claim(actor):
        async with session_factory() as s:
            return await VisitService(s, now=clock).start(visit.id, actor, NAMES)

    results = await asyncio.gather(claim("n1"), claim("n2"), return_exceptions=True)

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, InvalidTransition)]
    assert len(winners) == 1 and len(losers) == 1
    assert losers[0].current_status == "in-progress"

    async with session_factory() as check:
        final = await VisitRepository(check).get(visit.id)
        assert final.queue_status == "in-progress"
        assert final.assigned_nurse == winners[0].assigned_nurse


async def test_unknown_visit_is_not_found(session, clock):
    service = VisitService(session, now=clock)
    with pytest.raises(NotFound):
        await service.start(uuid.uuid4(), "n1", NAMES)
    with pytest.raises(NotFound):
        await service.complete(uuid.uuid4())
    with pytest.raises(NotFound):
        await service.update_priority(uuid.uuid4(), "high")


async def test_complete_directly_from_waiting_leaves_nurse_unset(session, clock):
    visit = await add_visit(session, clock)
    done = await VisitService(session, now=clock).complete(visit.id, notes="no-show")
    assert done.queue_status == "completed"
    assert done.assigned_nurse is None
    assert done.notes == "no-show"


async def test_completed_is_terminal(session, clock):
    visit = await add_visit(session, clock)
    service = VisitService(session, now=clock)
    await service.start(visit.id, "n1", NAMES)
    await service.complete(visit.id)

    with pytest.raises(InvalidTransition):
        await service.complete(visit.id)
    with pytest.raises(InvalidTransition):
        await service.start(visit.id, "n2", NAMES)

    final = await VisitRepository(session).get(visit.id)
    assert final.queue_status == "completed"
    assert final.assigned_nurse == "n1"


async def test_complete_without_notes_keeps_existing_notes(session, clock):
    visit = await add_visit(session, clock, notes="allergic to penicillin")
    done = await VisitService(session, now=clock).complete(visit.id)
    assert done.notes == "allergic to penicillin"


async def test_notes_can_be_edited_after_completion(session, clock):
    visit = await add_visit(session, clock)
    service = VisitService(session, now=clock)
    await service.complete(visit.id)
    clock.advance(minutes=5)

    updated = await service.update_notes(visit.id, "follow up next week")

    assert updated.notes == "follow up next week"
    assert updated.queue_status == "completed"


async def test_update_priority_touches_only_priority(session, clock):
    visit = await add_visit(session, clock, emergency_flag=True)
    service = VisitService(session, now=clock)
    await service.start(visit.id, "n1", NAMES)

    updated = await service.update_priority(visit.id, "low")

    assert updated.priority == "low"
    assert updated.emergency_flag is True
    assert updated.queue_status == "in-progress"
    assert updated.assigned_nurse == "n1"


async def test_mark_emergency_escalates_waiting_visit(session, clock):
    await add_visit(session, clock, student_id="S9", priority="low")
    escalated = await VisitService(session, now=clock).mark_emergency("S9")
    assert escalated.priority == "emergency"
    assert escalated.emergency_flag is True
    assert escalated.queue_status == "waiting"


async def test_mark_emergency_ignores_claimed_visits(session, clock):
    visit = await add_visit(session, clock, student_id="S9")
    service = VisitService(session, now=clock)
    await service.start(visit.id, "n1", NAMES)

    with pytest.raises(NotFound):
        await service.mark_emergency("S9")
    with pytest.raises(NotFound):
        await service.mark_emergency("nobody")


async def test_transitions_bump_updated_at_and_record_events(session, clock):
    visit = await add_visit(session, clock)
    created = visit.created_at
    service = VisitService(session, now=clock)

    clock.advance(minutes=7)
    started = await service.start(visit.id, "n1", NAMES)
    clock.advance(minutes=8)
    done = await service.complete(visit.id)

    assert done.updated_at.replace(tzinfo=None) == clock().replace(tzinfo=None)
    assert started.created_at.replace(tzinfo=None) == created.replace(tzinfo=None)

    rows = (await session.execute(select(EventOutbox.event_type).order_by(EventOutbox.occurred_at))).scalars().all()
    assert rows == ["VISIT_STARTED", "VISIT_COMPLETED"]
