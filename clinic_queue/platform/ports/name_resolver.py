from typing import Protocol, runtime_checkable

@runtime_checkable
class StaffNameResolverPort(Protocol):
    """Maps a staff identity to the display name cached on a visit when it is claimed."""
    async def display_name(self, actor_id: str) -> str | None: ...
