from __future__ import annotations

import logging

from lecture_pipeline.core.errors import AuthFailure, Forbidden, InvalidToken, PipelineError, Unauthenticated
from lecture_pipeline.core.security import parse_bearer
from lecture_pipeline.repositories.roles import ADMIN_ROLE, RoleRepository
from lecture_pipeline.services.identity import IdentityClient, Principal

logger = logging.getLogger(__name__)


class AuthGate:
    """
    Bearer credential -> identity -> role membership.

    Fails closed: anything unexpected along the way becomes AuthFailure,
    never a granted request.
    """

    def __init__(self, *, identity: IdentityClient, roles: RoleRepository) -> None:
        self._identity = identity
        self._roles = roles

    async def authenticate(self, authorization: str | None) -> Principal:
        token = parse_bearer(authorization)
        if token is None:
            raise Unauthenticated()
        try:
            return await self._identity.get_user(token)
        except InvalidToken:
            raise
        except Exception as e:
            logger.exception("Identity exchange failed")
            raise AuthFailure() from e

    async def require_admin(self, authorization: str | None) -> Principal:
        principal = await self.authenticate(authorization)
        try:
            is_admin = await self._roles.has_role(principal.user_id, ADMIN_ROLE)
        except Exception as e:
            logger.exception("Role lookup failed for user %s", principal.user_id)
            raise AuthFailure() from e
        if not is_admin:
            logger.info("Non-admin user %s denied", principal.user_id)
            raise Forbidden()
        return principal.with_roles(ADMIN_ROLE)

    async def optional(self, authorization: str | None) -> Principal | None:
        """Identity when a usable token is supplied, else None. Never raises for bad tokens."""
        if parse_bearer(authorization) is None:
            return None
        try:
            return await self.authenticate(authorization)
        except PipelineError:
            return None
