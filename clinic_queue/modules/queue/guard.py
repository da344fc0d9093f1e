from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from clinic_queue.core.base import as_utc
from clinic_queue.modules.visits.models import Visit
from clinic_queue.modules.visits.repository import VisitRepository

class AdmissionOutcome(str, Enum):
    ADMIT = "admit"
    ALREADY_ACTIVE = "already_active"
    STALE_OVERRIDE = "stale_override"

@dataclass(frozen=True)
class Admission:
    outcome: AdmissionOutcome
    existing: Visit | None = None

    @property
    def admitted(self) -> bool:
        return self.outcome is not AdmissionOutcome.ALREADY_ACTIVE

    @property
    def can_recheck_in(self) -> bool:
        return self.outcome is AdmissionOutcome.STALE_OVERRIDE

def is_stale(visit: Visit, now: datetime, stale_after: timedelta) -> bool:
    return now - as_utc(visit.created_at) > stale_after

def judge(existing: Visit | None, now: datetime, stale_after: timedelta) -> Admission:
    if existing is None:
        return Admission(AdmissionOutcome.ADMIT)
    if is_stale(existing, now, stale_after):
        return Admission(AdmissionOutcome.STALE_OVERRIDE, existing)
    return Admission(AdmissionOutcome.ALREADY_ACTIVE, existing)

async def admit_check_in(repo: VisitRepository, student_id: str, now: datetime, stale_after: timedelta) -> Admission:
    existing = await repo.latest_active_for(student_id)
    return judge(existing, now, stale_after)
