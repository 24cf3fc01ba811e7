"""FastAPI dependencies for authentication.

Provides the current learner extracted from the bearer token.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from src.auth.schemas import AuthenticatedLearner
from src.auth.security import decode_access_token
from src.core.middleware import set_learner_context


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


async def get_current_learner(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> AuthenticatedLearner:
    """Get the authenticated learner from the JWT access token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(token)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    learner_id = str(payload["sub"])
    set_learner_context(learner_id)

    return AuthenticatedLearner(id=learner_id, role=payload.get("role"))


CurrentLearner = Annotated[AuthenticatedLearner, Depends(get_current_learner)]
