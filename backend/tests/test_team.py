# Overview: Pytest coverage for team membership and role changes.

import pytest

from stockroom.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from stockroom.models import SessionToken
from stockroom.permissions import Role
from stockroom.services.team_service import TeamService


def test_admin_adds_staff_member(db_session, admin_a):
    member = TeamService(db_session).add_member(admin_a, {"email": "New@Atlas.ma", "full_name": "Nadia"})

    assert member.org_id == admin_a.org_id
    assert member.role is Role.STAFF
    assert member.email == "new@atlas.ma"
    assert member.is_active is True


def test_duplicate_email_conflicts(db_session, admin_a, staff_a):
    with pytest.raises(ConflictError):
        TeamService(db_session).add_member(admin_a, {"email": staff_a.email})


def test_admin_cannot_grant_roles(db_session, admin_a, staff_a):
    service = TeamService(db_session)

    with pytest.raises(PermissionDeniedError):
        service.add_member(admin_a, {"email": "boss@atlas.ma", "role": "ADMIN"})
    with pytest.raises(PermissionDeniedError):
        service.update_member(admin_a, staff_a.id, {"role": "ADMIN"})


def test_super_admin_promotes(db_session, super_a, staff_a):
    member = TeamService(db_session).update_member(super_a, staff_a.id, {"role": "admin"})

    assert member.role is Role.ADMIN


def test_cannot_change_own_role_or_deactivate_self(db_session, super_a):
    service = TeamService(db_session)

    with pytest.raises(ValidationError):
        service.update_member(super_a, super_a.id, {"role": "STAFF"})
    with pytest.raises(ValidationError):
        service.update_member(super_a, super_a.id, {"is_active": False})


def test_admin_cannot_touch_super_admin(db_session, admin_a, super_a):
    with pytest.raises(PermissionDeniedError):
        TeamService(db_session).update_member(admin_a, super_a.id, {"full_name": "Renamed"})


def test_unknown_role_is_rejected(db_session, super_a, staff_a):
    with pytest.raises(ValidationError):
        TeamService(db_session).update_member(super_a, staff_a.id, {"role": "OWNER"})


def test_other_org_member_is_not_found(db_session, admin_a, admin_b):
    with pytest.raises(NotFoundError):
        TeamService(db_session).update_member(admin_a, admin_b.id, {"full_name": "X"})


def test_remove_deactivates_and_revokes_tokens(db_session, client, admin_a, staff_a, headers_for):
    headers = headers_for(staff_a)

    TeamService(db_session).remove_member(admin_a, staff_a.id)

    assert staff_a.is_active is False
    assert db_session.query(SessionToken).filter_by(user_id=staff_a.id, is_revoked=False).count() == 0
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_staff_cannot_list_team(client, staff_a, headers_for):
    response = client.get("/api/admin/team", headers=headers_for(staff_a))

    assert response.status_code == 403
    assert response.get_json()["required_permission"] == "USERS_READ"


def test_team_routes(client, db_session, super_a, staff_a, admin_b, headers_for):
    headers = headers_for(super_a)

    listed = client.get("/api/admin/team", headers=headers).get_json()
    assert sorted(m["email"] for m in listed["members"]) == sorted([super_a.email, staff_a.email])

    promoted = client.patch(f"/api/admin/team/{staff_a.id}", headers=headers, json={"role": "ADMIN"})
    assert promoted.status_code == 200
    assert promoted.get_json()["member"]["role"] == "ADMIN"

    added = client.post("/api/admin/team", headers=headers, json={"email": "clerk@atlas.ma"})
    assert added.status_code == 201

    assert client.delete(f"/api/admin/team/{admin_b.id}", headers=headers).status_code == 404
