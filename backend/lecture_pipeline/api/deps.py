from __future__ import annotations

from fastapi import Depends, Request

from lecture_pipeline.core.container import PipelineServices
from lecture_pipeline.core.errors import RateLimited
from lecture_pipeline.services.identity import Principal


def get_services(request: Request) -> PipelineServices:
    return request.app.state.services


def client_ip(request: Request) -> str:
    # Honor X-Forwarded-For if present (first IP), else use request.client.
    xff = (request.headers.get("x-forwarded-for") or "").strip()
    if xff:
        return xff.split(",")[0].strip()
    return (getattr(request.client, "host", None) or "unknown").strip()


async def api_rate_limit(request: Request, services: PipelineServices = Depends(get_services)) -> None:
    rl = await services.limiters.api.hit(f"api:{client_ip(request)}")
    if not rl.allowed:
        raise RateLimited(retry_after=rl.reset_in_seconds)


async def webhook_rate_limit(request: Request, services: PipelineServices = Depends(get_services)) -> None:
    rl = await services.limiters.webhook.hit(f"webhook:{client_ip(request)}")
    if not rl.allowed:
        raise RateLimited("Rate limit exceeded", retry_after=rl.reset_in_seconds)


async def require_admin(request: Request, services: PipelineServices = Depends(get_services)) -> Principal:
    principal = await services.gate.require_admin(request.headers.get("authorization"))
    request.state.principal = principal
    return principal


async def upload_rate_limit(
    principal: Principal = Depends(require_admin),
    services: PipelineServices = Depends(get_services),
) -> Principal:
    # Keyed per admin: transcoding runs in the request path and is CPU/disk heavy.
    rl = await services.limiters.upload.hit(f"upload:{principal.user_id}")
    if not rl.allowed:
        raise RateLimited("Upload limit exceeded, please try again later.", retry_after=rl.reset_in_seconds)
    return principal


async def verify_webhook_key(request: Request, services: PipelineServices = Depends(get_services)) -> None:
    # Resolved before the body is validated, so unauthenticated callers never see schema errors.
    services.webhook.verify(request.headers.get("x-api-key"))
