from __future__ import annotations

from ..extensions import db
from ..permissions import Role
from ..time_utils import to_utc_z

class User(db.Model):
    """
    Staff account, provisioned from the external identity provider.

    MULTI-TENANT: Users belong to exactly one organization (org_id).
    Email is unique within an organization, not globally.

    role is one of Role (STAFF, ADMIN, SUPER_ADMIN); the permission gate
    maps it to capabilities.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("org_id", "email", name="uq_users_org_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable until an admin attaches the account to an organization
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)

    # Subject id from the identity provider
    external_id = db.Column(db.String(128), nullable=True, unique=True)
    email = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=True)

    role = db.Column(db.Enum(Role, native_enum=False, length=16), nullable=False, default=Role.STAFF)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=True)

    organization = db.relationship("Organization", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role.value if self.role else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_seen_at": to_utc_z(self.last_seen_at) if self.last_seen_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer token resolving a request to a user and tenant.

    Tokens are minted once the identity provider has authenticated the user;
    only the SHA-256 hash is stored. org_id is captured at issue time and is
    immutable for the token's lifetime.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "org_id": self.org_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
