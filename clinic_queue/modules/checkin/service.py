import logging
from datetime import datetime, timedelta
from typing import Callable
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from clinic_queue.core.base import utcnow
from clinic_queue.core.config import settings
from clinic_queue.core.errors import ValidationFailed, AlreadyActive
from clinic_queue.modules.checkin.schemas import CheckInIn, CheckInOut
from clinic_queue.modules.events.outbox import OutboxService
from clinic_queue.modules.queue import lifecycle
from clinic_queue.modules.queue.classifier import classify
from clinic_queue.modules.queue.guard import admit_check_in, AdmissionOutcome
from clinic_queue.modules.queue.ranking import queue_position
from clinic_queue.modules.sessions.schemas import Identity
from clinic_queue.modules.visits.models import Visit, WAITING, ABANDONED
from clinic_queue.modules.visits.repository import VisitRepository
from clinic_queue.modules.visits.service import snapshot

logger = logging.getLogger(__name__)

def _clean_symptoms(symptoms: list[str]) -> list[str]:
    return [s.strip() for s in symptoms if s and s.strip()]

class CheckInService:
    def __init__(self, session: AsyncSession, now: Callable[[], datetime] = utcnow, stale_after: timedelta | None = None):
        self.session = session
        self.visits = VisitRepository(session)
        self.outbox = OutboxService(session)
        self.now = now
        self.stale_after = stale_after or timedelta(minutes=settings.STALE_VISIT_MINUTES)

    async def check_in(self, payload: CheckInIn, identity: Identity | None) -> CheckInOut:
        symptoms = _clean_symptoms(payload.symptoms)
        if not symptoms:
            raise ValidationFailed("At least one symptom is required")
        if not payload.severity:
            raise ValidationFailed("Severity level is required")
        if identity is None or not identity.student_id:
            raise ValidationFailed("No valid user information found")

        now = self.now()
        admission = await admit_check_in(self.visits, identity.student_id, now, self.stale_after)
        if admission.outcome is AdmissionOutcome.ALREADY_ACTIVE:
            logger.warning("Duplicate check-in for student_id=%s (visit %s)", identity.student_id, admission.existing.id)
            raise AlreadyActive(snapshot(admission.existing))
        if admission.outcome is AdmissionOutcome.STALE_OVERRIDE:
            await self._abandon(admission.existing, now)

        waiting_count = await self.visits.count(status=WAITING)
        triage = classify(payload.severity, payload.emergency_flag, waiting_count)
        try:
            visit = await self.visits.create(
                user_id=identity.user_id,
                student_id=identity.student_id,
                name=identity.name,
                mobile=identity.mobile,
                class_name=identity.class_name,
                symptoms=symptoms,
                emergency_flag=payload.emergency_flag,
                priority=triage.priority,
                estimated_wait_time=triage.estimated_wait_time,
                queue_status=WAITING,
                created_at=now,
                updated_at=now,
            )
            await self.outbox.record(
                "VISIT_CHECKED_IN", visit.id,
                {"priority": visit.priority, "emergency_flag": visit.emergency_flag, "kind": identity.kind.value},
                occurred_at=now,
            )
            await self.session.commit()
        except IntegrityError:
            # lost a double-submit race against the one-active-visit index
            await self.session.rollback()
            winner = await self.visits.latest_active_for(identity.student_id)
            if winner is None:
                raise
            logger.warning("Concurrent duplicate check-in for student_id=%s rejected", identity.student_id)
            raise AlreadyActive(snapshot(winner))

        logger.info(
            "Checked in visit %s student_id=%s priority=%s wait=%s",
            visit.id, visit.student_id, visit.priority, visit.estimated_wait_time,
        )
        return CheckInOut(
            visit_id=visit.id,
            estimated_wait_time=visit.estimated_wait_time,
            queue_status=visit.queue_status,
            priority=visit.priority,
            symptoms=visit.symptoms,
            emergency_flag=visit.emergency_flag,
            recheck_in=admission.can_recheck_in,
        )

    async def _abandon(self, stale: Visit, now: datetime) -> None:
        closed = await self.visits.transition(
            stale.id, lifecycle.sources("abandon"), now=now, queue_status=ABANDONED
        )
        if closed is None:
            # someone completed or abandoned it in the meantime
            return
        await self.outbox.record("VISIT_ABANDONED", stale.id, {"reason": "stale_recheck_in"}, occurred_at=now)
        logger.info("Stale visit %s for student_id=%s abandoned on re-check-in", stale.id, stale.student_id)

    async def current_visit(self, identity: Identity) -> dict | None:
        visit = await self.visits.active_for_identity(student_id=identity.student_id, user_id=identity.user_id)
        if visit is None:
            return None
        position = None
        if visit.queue_status == WAITING:
            position = queue_position(visit, await self.visits.list_waiting())
        return {
            "visitId": str(visit.id),
            "symptoms": visit.symptoms,
            "queueStatus": visit.queue_status,
            "priority": visit.priority,
            "emergencyFlag": visit.emergency_flag,
            "estimatedWaitTime": visit.estimated_wait_time,
            "queuePosition": position,
            "createdAt": snapshot(visit)["createdAt"],
        }
