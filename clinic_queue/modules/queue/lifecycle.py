from clinic_queue.modules.visits.models import WAITING, IN_PROGRESS, COMPLETED, ABANDONED

# transition name -> (allowed source statuses, target status); completed and abandoned are terminal
TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    "start": (frozenset({WAITING}), IN_PROGRESS),
    "complete": (frozenset({WAITING, IN_PROGRESS}), COMPLETED),
    "abandon": (frozenset({WAITING, IN_PROGRESS}), ABANDONED),
}

def sources(action: str) -> frozenset[str]:
    return TRANSITIONS[action][0]

def target(action: str) -> str:
    return TRANSITIONS[action][1]
