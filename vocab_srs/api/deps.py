"""Shared API dependencies."""
from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError
from sqlalchemy.orm import Session

from vocab_srs.config import settings
from vocab_srs.core.security import InvalidTokenError, decode_token
from vocab_srs.db.session import get_db
from vocab_srs.schemas import TokenPayload
from vocab_srs.services.progress import ProgressService

# Tokens are issued by the auth service; this URL only feeds the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")


def get_current_learner_id(token: str = Depends(oauth2_scheme)) -> str:
    """Resolve the learner identifier from the Authorization header."""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    try:
        payload = decode_token(token)
        if payload.get("type") != "access":
            raise InvalidTokenError("Token must be an access token")
        token_data = TokenPayload.model_validate(payload)
    except (InvalidTokenError, ValidationError, ValueError, KeyError) as exc:
        raise credentials_exception from exc

    return token_data.sub


def get_progress_service(db: Session = Depends(get_db)) -> ProgressService:
    return ProgressService(db)


__all__ = ["get_current_learner_id", "get_db", "get_progress_service", "oauth2_scheme"]
