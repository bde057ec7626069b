from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from lecture_pipeline.core.errors import InvalidToken
from lecture_pipeline.core.security import decode_access_token


class IdentityUnavailable(RuntimeError):
    pass


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str | None = None
    roles: frozenset[str] = field(default_factory=frozenset)

    def with_roles(self, *roles: str) -> "Principal":
        return Principal(user_id=self.user_id, email=self.email, roles=self.roles | frozenset(roles))


class IdentityClient:
    """
    Exchanges a bearer access token for a user identity.

    With a JWT secret configured the token is verified locally; otherwise
    the identity service is asked (`GET /auth/v1/user`). A rejected token is
    `InvalidToken`; an unreachable or misconfigured service is
    `IdentityUnavailable` so callers can fail closed.
    """

    def __init__(
        self,
        *,
        base_url: str | None,
        api_key: str | None,
        jwt_secret: str | None,
        client: httpx.AsyncClient,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._base = (base_url or "").rstrip("/")
        self._api_key = api_key
        self._jwt_secret = jwt_secret
        self._client = client
        self._timeout = timeout_seconds

    async def get_user(self, token: str) -> Principal:
        if self._jwt_secret:
            return self._verify_locally(token)
        return await self._fetch_remote(token)

    def _verify_locally(self, token: str) -> Principal:
        try:
            payload = decode_access_token(token, self._jwt_secret or "")
        except ValueError as e:
            raise InvalidToken() from e
        sub = str(payload.get("sub") or "").strip()
        if not sub:
            raise InvalidToken()
        email = payload.get("email")
        return Principal(user_id=sub, email=str(email) if email else None)

    async def _fetch_remote(self, token: str) -> Principal:
        if not self._base or not self._api_key:
            raise IdentityUnavailable("identity service is not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY)")

        try:
            res = await self._client.get(
                f"{self._base}/auth/v1/user",
                headers={"apikey": self._api_key, "Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise IdentityUnavailable(f"identity service unreachable: {e!r}") from e

        if res.status_code in (400, 401, 403, 404):
            raise InvalidToken()
        if res.status_code >= 400:
            raise IdentityUnavailable(f"identity service returned {res.status_code}")

        try:
            data = res.json()
        except ValueError as e:
            raise IdentityUnavailable("identity service returned non-JSON body") from e

        user_id = str((data or {}).get("id") or "").strip() if isinstance(data, dict) else ""
        if not user_id:
            raise InvalidToken()
        email = data.get("email")
        return Principal(user_id=user_id, email=str(email) if email else None)
