# Overview: Team membership and role management inside one organization.

"""
Team Service

MULTI-TENANT: members are looked up by (id, org_id); another organization's
user is reported as not found.

Rules:
- listing needs USERS_READ; adding a member USERS_CREATE; editing name or
  active flag USERS_UPDATE; removing USERS_DELETE
- giving any role other than STAFF, or changing a role, needs USERS_MANAGE_ROLES
- nobody changes their own role or deactivates or removes themselves
- a member ranked above the actor cannot be edited by them
- removing a member deactivates the account and revokes its tokens; sales
  and movements keep pointing at it
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..models import SessionToken, User
from ..permissions import Permission, Role, check_permission
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, validate_payload

logger = logging.getLogger(__name__)

MEMBER_POLICY = ModelValidationPolicy(
    writable_fields={"email", "full_name", "external_id", "role", "is_active"},
    required_on_create={"email"},
)


def _parse_role(value) -> Role:
    try:
        return Role.parse(value)
    except ValueError:
        raise ValidationError(f"role must be one of {', '.join(r.value for r in Role)}")


class TeamService:
    def __init__(self, session):
        self.session = session

    def get_member(self, org_id: int, user_id: int) -> User:
        user = self.session.query(User).filter_by(id=user_id, org_id=org_id).first()
        if user is None:
            raise NotFoundError("User not found", details={"user_id": user_id})
        return user

    def list_members(self, actor, *, include_inactive: bool = True) -> list[User]:
        check_permission(actor.role, Permission.USERS_READ)
        query = self.session.query(User).filter_by(org_id=actor.org_id)
        if not include_inactive:
            query = query.filter(User.is_active.is_(True))
        return query.order_by(User.created_at.asc(), User.id.asc()).all()

    def _clean(self, payload: dict, *, partial: bool) -> dict:
        payload = dict(payload or {})
        role = payload.pop("role", None)
        patch = validate_payload(model=User, payload=payload, policy=MEMBER_POLICY, partial=partial)
        if role is not None:
            patch["role"] = _parse_role(role)
        if "email" in patch:
            email = (patch["email"] or "").lower()
            if "@" not in email:
                raise ValidationError("email must be a valid address")
            patch["email"] = email
        return patch

    def add_member(self, actor, payload: dict) -> User:
        """
        Attach a new account to the actor's organization.

        Raises:
            ConflictError: email already used in this organization
        """
        check_permission(actor.role, Permission.USERS_CREATE)
        patch = self._clean(payload, partial=False)
        role = patch.pop("role", Role.STAFF)
        if role is not Role.STAFF:
            check_permission(actor.role, Permission.USERS_MANAGE_ROLES)

        exists = self.session.query(User.id).filter_by(org_id=actor.org_id, email=patch["email"]).first()
        if exists is not None:
            raise ConflictError("A member with this email already exists")

        user = User(org_id=actor.org_id, role=role, **{"is_active": True, **patch})
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("A member with this email already exists")
        logger.info("member added user_id=%s role=%s by user_id=%s", user.id, role.value, actor.id)
        return user

    def _guard_rank(self, actor, target: User) -> None:
        if Role.parse(target.role).rank > Role.parse(actor.role).rank:
            raise PermissionDeniedError(
                "Cannot modify a member with a higher role",
                details={"required_permission": Permission.USERS_MANAGE_ROLES.value},
            )

    def update_member(self, actor, user_id: int, payload: dict) -> User:
        """Edit a member's name, email, active flag or role."""
        check_permission(actor.role, Permission.USERS_UPDATE)
        patch = self._clean(payload, partial=True)
        if not patch:
            raise ValidationError("Nothing to update")
        target = self.get_member(actor.org_id, user_id)
        self._guard_rank(actor, target)

        if "role" in patch and patch["role"] is not target.role:
            check_permission(actor.role, Permission.USERS_MANAGE_ROLES)
            if target.id == actor.id:
                raise ValidationError("You cannot change your own role")
        if patch.get("is_active") is False and target.id == actor.id:
            raise ValidationError("You cannot deactivate your own account")
        if "email" in patch and patch["email"] != target.email:
            taken = (
                self.session.query(User.id)
                .filter(User.org_id == actor.org_id, User.email == patch["email"], User.id != target.id)
                .first()
            )
            if taken is not None:
                raise ConflictError("A member with this email already exists")

        was_active = target.is_active
        for key, value in patch.items():
            setattr(target, key, value)
        if was_active and target.is_active is False:
            self._revoke_tokens(target)
        self.session.commit()
        return target

    def remove_member(self, actor, user_id: int) -> User:
        check_permission(actor.role, Permission.USERS_DELETE)
        target = self.get_member(actor.org_id, user_id)
        if target.id == actor.id:
            raise ValidationError("You cannot remove your own account")
        self._guard_rank(actor, target)

        target.is_active = False
        revoked = self._revoke_tokens(target)
        self.session.commit()
        logger.info("member removed user_id=%s revoked_tokens=%s by user_id=%s", target.id, revoked, actor.id)
        return target

    def _revoke_tokens(self, user: User) -> int:
        now = utcnow()
        records = self.session.query(SessionToken).filter_by(user_id=user.id, is_revoked=False).all()
        for record in records:
            record.is_revoked = True
            record.revoked_at = now
        return len(records)
