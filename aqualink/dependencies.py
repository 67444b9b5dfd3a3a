from fastapi import Request

from aqualink.config import settings


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_actor_name(request: Request) -> str:
    actor = (request.headers.get('x-actor-name') or '').strip()
    return actor or settings.default_actor_name
