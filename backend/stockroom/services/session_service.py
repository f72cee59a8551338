# Overview: Bearer token issue, validation and revocation.

"""
Session Token Management Service with Multi-Tenant Support

Users authenticate with the external identity provider; once that succeeds
(or an operator runs `flask tokens issue`), a bearer token is minted here.

MULTI-TENANT: tokens capture org_id at creation time. This establishes the
tenant context for every authenticated request without trusting anything
the client sends.

- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout from SESSION_TOKEN_TTL_HOURS
- Revocable; a deactivated user or organization invalidates its tokens
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..errors import ValidationError
from ..models import Organization, SessionToken, User
from ..time_utils import utcnow


DEFAULT_TTL_HOURS = 24


@dataclass
class SessionContext:
    """User identity plus the tenant captured on the token."""
    user: User
    token: SessionToken
    org_id: int


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy); only ever sent to the client."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens are high-entropy, so a fast hash is sufficient
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _ttl() -> timedelta:
    hours = current_app.config.get("SESSION_TOKEN_TTL_HOURS", DEFAULT_TTL_HOURS)
    return timedelta(hours=int(hours))


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Mint a token for an active user of an active organization.

    Returns (token_record, plaintext_token). Only the hash is stored.

    Raises ValidationError if the user is missing, inactive, or not yet
    attached to an organization.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user or not user.is_active:
        raise ValidationError("User not found or inactive")

    if not user.org_id:
        raise ValidationError("User must belong to an organization")

    org = db.session.query(Organization).filter_by(id=user.org_id).first()
    if not org or not org.is_active:
        raise ValidationError("Organization is not active")

    plaintext_token = generate_token()
    now = utcnow()

    token = SessionToken(
        user_id=user.id,
        org_id=user.org_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + _ttl(),
        is_revoked=False,
    )
    db.session.add(token)
    db.session.commit()

    return token, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext.

    Returns None if the token is unknown, expired or revoked, or if the user
    or organization has been deactivated since it was issued (the token is
    revoked in that case).
    """
    now = utcnow()
    record = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not record:
        return None

    if record.expires_at < now:
        return None

    user = record.user
    org = db.session.query(Organization).filter_by(id=record.org_id).first()
    if not user or not user.is_active or user.org_id != record.org_id or not org or not org.is_active:
        record.is_revoked = True
        record.revoked_at = now
        db.session.commit()
        return None

    user.last_seen_at = now
    db.session.commit()

    return SessionContext(user=user, token=record, org_id=record.org_id)


def revoke_session(token: str) -> bool:
    """Returns True if a live token was revoked, False if none matched."""
    record = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not record:
        return False

    record.is_revoked = True
    record.revoked_at = utcnow()
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int) -> int:
    now = utcnow()
    records = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for record in records:
        record.is_revoked = True
        record.revoked_at = now
    db.session.commit()
    return len(records)
