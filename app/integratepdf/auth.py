"""
Authentication and ownership helpers.

Handles:
- Verifying identity-provider session tokens (Bearer JWT)
- Resolving the identity to an internal User row, creating it if needed
- Loading documents and integrations scoped to their owner
"""

import logging
import uuid
from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db
from .models_db import Document, Integration, SubscriptionTier, User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Identity:
    """Caller as asserted by the identity provider."""

    external_id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class AuthenticationError(Exception):
    """Raised when a session token cannot be verified."""

    pass


def decode_identity_token(token: str) -> Identity:
    """
    Verify a session token and return the identity it carries.

    HS256 tokens are checked against IDENTITY_JWT_SECRET, RS256 tokens against
    IDENTITY_JWT_PUBLIC_KEY. Issuer and audience are enforced when configured.

    Raises:
        AuthenticationError: If the token is invalid or no verification key is configured.
    """
    settings = get_settings()
    if settings.identity_jwt_public_key:
        key, algorithms = settings.identity_jwt_public_key, ["RS256"]
    elif settings.identity_jwt_secret:
        key, algorithms = settings.identity_jwt_secret, ["HS256"]
    else:
        raise AuthenticationError("No identity token verification key configured")

    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=settings.identity_jwt_audience,
            issuer=settings.identity_jwt_issuer,
            options={
                "require": ["sub", "exp"],
                "verify_aud": settings.identity_jwt_audience is not None,
            },
        )
    except jwt.PyJWTError as e:
        raise AuthenticationError(f"Invalid token: {e}") from e

    return Identity(
        external_id=claims["sub"],
        email=claims.get("email"),
        first_name=claims.get("first_name") or claims.get("given_name"),
        last_name=claims.get("last_name") or claims.get("family_name"),
    )


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    """FastAPI dependency: the verified caller, or 401."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_identity_token(credentials.credentials)
    except AuthenticationError as e:
        logger.warning("Rejected session token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def resolve_user(db: Session, identity: Identity, create_if_missing: bool = True) -> User | None:
    """
    Map an identity to its internal user.

    The identity webhook normally provisions the row; if a request arrives
    first the user is created here with the default quota.
    """
    user = db.query(User).filter(User.external_id == identity.external_id).first()
    if user or not create_if_missing:
        return user

    logger.info("Creating missing user for identity %s", identity.external_id)
    user = User(
        external_id=identity.external_id,
        email=identity.email,
        first_name=identity.first_name,
        last_name=identity.last_name,
        subscription_tier=SubscriptionTier.FREE,
        documents_processed=0,
        monthly_limit=get_settings().default_monthly_limit,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race against the webhook or a parallel request
        db.rollback()
        return db.query(User).filter(User.external_id == identity.external_id).first()
    db.refresh(user)
    return user


def get_current_user(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency: the caller's internal User row."""
    user = resolve_user(db, identity)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to resolve user",
        )
    return user


def parse_uuid(value: str, label: str) -> uuid.UUID:
    """Parse a path/body id, 400 on malformed input."""
    try:
        return uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label} ID format",
        )


def get_owned_document(db: Session, user: User, document_id: str) -> Document:
    """Load a document owned by `user`; anything else is a 404."""
    doc_uuid = parse_uuid(document_id, "document")
    document = (
        db.query(Document)
        .filter(Document.id == doc_uuid, Document.user_id == user.id)
        .first()
    )
    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found",
        )
    return document


def get_owned_integration(db: Session, user: User, integration_id: str) -> Integration:
    """Load an integration owned by `user`; anything else is a 404."""
    integration_uuid = parse_uuid(integration_id, "integration")
    integration = (
        db.query(Integration)
        .filter(Integration.id == integration_uuid, Integration.user_id == user.id)
        .first()
    )
    if not integration:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Integration not found",
        )
    return integration
