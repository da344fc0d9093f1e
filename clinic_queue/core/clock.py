from datetime import datetime
from typing import Callable
from clinic_queue.core.base import utcnow

Clock = Callable[[], datetime]

def get_clock() -> Clock:
    """FastAPI dependency for "now"; tests override it to move time deterministically."""
    return utcnow
