"""FastAPI dependency: get_actor.

Authentication happens upstream. The gateway in front of this service
forwards the authenticated principal id in the X-Actor-Id header, and every
mutation records it as created_by.

Usage in any mutating route:
    from src.lt_gateway.auth.dependencies import get_actor

    @router.post("/thing")
    async def create(actor: Annotated[str, Depends(get_actor)]):
        ...
"""

from fastapi import Header

from src.lt_common.errors import AppError

ACTOR_HEADER = "X-Actor-Id"


class MissingActorError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, f"{ACTOR_HEADER} header is required", 401)


async def get_actor(
    x_actor_id: str | None = Header(None, alias=ACTOR_HEADER),
) -> str:
    """Return the upstream-authenticated principal id, or 401 if absent."""
    if x_actor_id is None or not x_actor_id.strip():
        raise MissingActorError()
    return x_actor_id.strip()
