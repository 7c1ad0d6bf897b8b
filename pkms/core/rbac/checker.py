"""Request-time permission checking for pkms.

Turns an ``enforce`` decision into an HTTP error for FastAPI routes. The
authenticated user id is read from ``request.state.user_id`` (set by the
authentication layer) and the tenant from the ``X-Tenant-ID`` header.
"""

from typing import Optional

from fastapi import HTTPException, Request, status

from pkms.common.logger import get_logger

from .engine import get_enforcer
from .enforcer import Enforcer
from .errors import InvalidArgumentError
from .permissions import GLOBAL_DOMAIN, ScopedPermission

logger = get_logger("checker")

TENANT_HEADER = "X-Tenant-ID"


def get_request_user(request: Request) -> Optional[str]:
    return getattr(request.state, "user_id", None)


def get_request_tenant(request: Request) -> str:
    """Tenant of the request; the global domain when no header is sent."""
    return request.headers.get(TENANT_HEADER, GLOBAL_DOMAIN)


class RequirePermission:
    """
    FastAPI dependency enforcing one (object, action) permission.

    Usage:
        @router.post("/projects", dependencies=[Depends(RequirePermission("project", "write"))])
        async def create_project():
            ...

        @router.get("/api/v1/dashboard",
                    dependencies=[Depends(RequirePermission("/api/v1/dashboard", "read"))])
        async def dashboard():
            ...
    """

    def __init__(self, obj: str, action: str, enforcer: Optional[Enforcer] = None):
        if not obj:
            raise InvalidArgumentError("object")
        if not action:
            raise InvalidArgumentError("action")
        self.obj = obj
        self.action = action
        self._enforcer = enforcer

    @classmethod
    def from_string(cls, perm_str: str, enforcer: Optional[Enforcer] = None) -> "RequirePermission":
        """Build from a vocabulary permission string like 'project:write'."""
        perm = ScopedPermission.from_string(perm_str)
        return cls(perm.object, perm.action, enforcer)

    @property
    def enforcer(self) -> Enforcer:
        return self._enforcer or get_enforcer()

    async def __call__(self, request: Request) -> str:
        user_id = get_request_user(request)
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required"
            )

        tenant_id = get_request_tenant(request)
        if not self.enforcer.enforce(user_id, tenant_id, self.obj, self.action):
            logger.info(
                f"Denied {user_id} in tenant {tenant_id!r}: {self.obj} {self.action}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {self.obj}:{self.action}"
            )

        return user_id
