from clinic_queue.core.security import Principal
from clinic_queue.platform.ports.name_resolver import StaffNameResolverPort

class PrincipalNameResolver(StaffNameResolverPort):
    """Resolves names from the acting principal's token claims.

    The acting nurse is the only identity a transition needs a name for, so the
    claims already in hand are enough; no user-table lookup is performed.
    """
    def __init__(self, principal: Principal):
        self.principal = principal

    async def display_name(self, actor_id: str) -> str | None:
        if actor_id == str(self.principal.user_id):
            return self.principal.name or self.principal.email
        return None
