"""Intake triage: map a declared severity onto a priority tier and an advisory wait.

The estimate is computed once at check-in from the number of visits waiting at
that instant and is never recomputed; it is a hint for the patient, not a
scheduling commitment.
"""
from dataclasses import dataclass

SEVERITY_TO_PRIORITY = {
    "Emergency": "emergency",
    "High": "high",
    "Medium": "medium",
    "Low": "low",
}

# Anything we do not recognise is triaged as medium rather than rejected.
DEFAULT_PRIORITY = "medium"

FIXED_WAIT_MINUTES = {"emergency": 5, "high": 10}
SCALED_WAIT_MINUTES = {"medium": (15, 2), "low": (20, 3)}  # base, per waiting visit

@dataclass(frozen=True)
class Classification:
    priority: str
    estimated_wait_time: int

def priority_for(severity: str | None) -> str:
    return SEVERITY_TO_PRIORITY.get(severity or "", DEFAULT_PRIORITY)

def estimate_wait(priority: str, waiting_count: int) -> int:
    if priority in FIXED_WAIT_MINUTES:
        return FIXED_WAIT_MINUTES[priority]
    base, per_visit = SCALED_WAIT_MINUTES.get(priority, SCALED_WAIT_MINUTES["low"])
    return base + per_visit * max(waiting_count, 0)

def classify(severity: str | None, emergency_flag: bool, waiting_count: int) -> Classification:
    # emergency_flag is deliberately not consulted: at intake it is a ranking
    # signal only. The mark-emergency path is what forces priority=emergency.
    priority = priority_for(severity)
    return Classification(priority=priority, estimated_wait_time=estimate_wait(priority, waiting_count))
