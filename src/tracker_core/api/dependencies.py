"""Request dependencies shared by the API routers."""
from uuid import UUID

from fastapi import Header, HTTPException


def get_actor_id(
    x_user_id: str = Header(
        ...,
        alias="X-User-Id",
        description="UUID of the user performing the request",
    ),
) -> UUID:
    """Extract the acting user's ID from the X-User-Id header."""
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid X-User-Id header: {x_user_id}")
