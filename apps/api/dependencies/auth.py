from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from apps.api.core.config import get_settings
from apps.api.services.authorization import Actor
from apps.api.services.users import UserDirectory

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_actor_id(token: str | None, token_map: dict[str, str]) -> str:
    """Return the actor id bound to the provided bearer token."""

    if not token or token not in token_map:
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token_map[token]


async def get_user_directory(request: Request) -> UserDirectory:
    directory = getattr(request.app.state, "user_directory", None)
    if directory is None:
        raise HTTPException(status_code=503, detail="User directory is not configured")
    return directory


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    directory: Annotated[UserDirectory, Depends(get_user_directory)],
) -> Actor:
    """Resolve the caller and load the roles it holds right now.

    Credential storage is not part of this service: tokens are mapped to actor
    ids through configuration. Roles are read from the directory on every
    request because they can change between requests.
    """

    token = credentials.credentials if credentials is not None else None
    actor_id = resolve_actor_id(token, get_settings().auth_tokens)
    return await directory.get_actor(actor_id)


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
