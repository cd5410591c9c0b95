"""Circle registry tests: membership, roles, invites, invite codes."""

from datetime import timedelta

import pytest

from safecircle.core import clock
from safecircle.core.errors import CapacityError, LastAdminError
from safecircle.models.circle import Circle
from safecircle.services import circle_service
from tests.conftest import TestingSessionLocal, auth, create_circle, join, register, setup_circle


def test_create_circle_makes_owner_sole_admin(client):
    token, user_id = register(client, "creator@test.com")
    circle = create_circle(client, token, "Hikers", description="Weekend trips")
    assert circle["name"] == "Hikers"
    assert circle["memberCount"] == 1
    assert circle["members"][0]["userId"] == user_id
    assert circle["members"][0]["role"] == "admin"
    assert len(circle["inviteCode"]) == 8
    expiry = circle["inviteCodeExpiry"]
    assert expiry > clock.utcnow().isoformat()[:10]

    me = client.get("/auth/me", headers=auth(token)).json()["data"]
    assert me["circles"] == [circle["id"]]


@pytest.mark.parametrize("name", ["", "x", "a" * 101, "   "])
def test_create_circle_validates_name(client, name):
    token, _ = register(client, "badname@test.com")
    r = client.post("/circles", headers=auth(token), json={"name": name})
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


def test_list_and_get_circles(client):
    circle, owner_token, _, members = setup_circle(client, member_count=1)
    outsider_token, _ = register(client, "outsider@test.com")

    mine = client.get("/circles", headers=auth(members[0][0])).json()
    assert mine["count"] == 1
    assert mine["data"][0]["id"] == circle["id"]

    assert client.get(f"/circles/{circle['id']}", headers=auth(owner_token)).status_code == 200
    assert client.get(f"/circles/{circle['id']}", headers=auth(outsider_token)).status_code == 403
    assert client.get("/circles/9999", headers=auth(owner_token)).status_code == 404


def test_join_by_code_errors(client, frozen_clock):
    circle, _, _, members = setup_circle(client, member_count=1)
    member_token, _ = members[0]

    assert join(client, member_token, "NOPE0000").status_code == 404

    again = join(client, member_token, circle["inviteCode"])
    assert again.status_code == 400
    assert again.json()["code"] == "already_member"

    late_token, _ = register(client, "late@test.com")
    frozen_clock.advance(days=31)
    expired = join(client, late_token, circle["inviteCode"])
    assert expired.status_code == 400
    assert expired.json()["code"] == "expired"


def test_join_code_is_case_insensitive(client):
    owner_token, _ = register(client, "o@test.com")
    circle = create_circle(client, owner_token)
    token, _ = register(client, "lower@test.com")
    assert join(client, token, circle["inviteCode"].lower()).status_code == 200


def test_regenerate_code_admin_only(client):
    circle, owner_token, _, members = setup_circle(client, member_count=1)
    member_token, _ = members[0]

    assert client.post(f"/circles/{circle['id']}/regenerate-code", headers=auth(member_token)).status_code == 403

    r = client.post(f"/circles/{circle['id']}/regenerate-code", headers=auth(owner_token))
    assert r.status_code == 200
    new_code = r.json()["data"]["inviteCode"]
    assert new_code != circle["inviteCode"]

    newbie, _ = register(client, "newbie@test.com")
    assert join(client, newbie, circle["inviteCode"]).status_code == 404
    assert join(client, newbie, new_code).status_code == 200


def test_leave_keeps_owner_as_admin(client):
    circle, owner_token, owner_id, members = setup_circle(client, member_count=1)
    member_token, _ = members[0]

    assert client.post(f"/circles/{circle['id']}/leave", headers=auth(member_token)).status_code == 200
    data = client.get(f"/circles/{circle['id']}", headers=auth(owner_token)).json()["data"]
    assert data["memberCount"] == 1
    assert [(m["userId"], m["role"]) for m in data["members"]] == [(owner_id, "admin")]

    # Left member no longer sees the circle
    assert client.get(f"/circles/{circle['id']}", headers=auth(member_token)).status_code == 403


def test_sole_admin_cannot_leave_or_be_demoted(client):
    circle, owner_token, owner_id, _ = setup_circle(client, member_count=1)

    r = client.post(f"/circles/{circle['id']}/leave", headers=auth(owner_token))
    assert r.status_code == 400
    assert r.json()["code"] == "last_admin"

    r = client.put(f"/circles/{circle['id']}/members/{owner_id}/role", headers=auth(owner_token), json={"role": "member"})
    assert r.status_code == 400
    assert r.json()["code"] == "last_admin"


def test_promote_then_original_admin_can_leave(client):
    circle, owner_token, _, members = setup_circle(client, member_count=1)
    member_token, member_id = members[0]

    r = client.put(f"/circles/{circle['id']}/members/{member_id}/role", headers=auth(owner_token), json={"role": "admin"})
    assert r.status_code == 200
    assert client.post(f"/circles/{circle['id']}/leave", headers=auth(owner_token)).status_code == 200

    data = client.get(f"/circles/{circle['id']}", headers=auth(member_token)).json()["data"]
    assert [(m["userId"], m["role"]) for m in data["members"]] == [(member_id, "admin")]


def test_remove_member(client):
    circle, owner_token, owner_id, members = setup_circle(client, member_count=2)
    (m0_token, m0_id), (_, m1_id) = members

    assert client.delete(f"/circles/{circle['id']}/members/{m1_id}", headers=auth(m0_token)).status_code == 403
    self_remove = client.delete(f"/circles/{circle['id']}/members/{owner_id}", headers=auth(owner_token))
    assert self_remove.status_code == 400

    r = client.delete(f"/circles/{circle['id']}/members/{m1_id}", headers=auth(owner_token))
    assert r.status_code == 200
    assert r.json()["data"]["memberCount"] == 2

    members_now = client.get(f"/circles/{circle['id']}/members", headers=auth(owner_token)).json()
    assert {m["userId"] for m in members_now["data"]} == {owner_id, m0_id}


def test_removed_member_rejoins_by_reactivation(client):
    circle, owner_token, _, members = setup_circle(client, member_count=1)
    member_token, member_id = members[0]
    client.delete(f"/circles/{circle['id']}/members/{member_id}", headers=auth(owner_token))

    assert join(client, member_token, circle["inviteCode"]).status_code == 200

    db = TestingSessionLocal()
    rows = [m for m in db.get(Circle, circle["id"]).members if m.user_id == member_id]
    assert len(rows) == 1
    assert rows[0].is_active is True
    db.close()


def test_capacity_limit(client):
    owner_token, _ = register(client, "cap@test.com")
    circle = create_circle(client, owner_token, settings={"maxMembers": 2})
    first, _ = register(client, "first@test.com")
    second, _ = register(client, "second@test.com")

    assert join(client, first, circle["inviteCode"]).status_code == 200
    r = join(client, second, circle["inviteCode"])
    assert r.status_code == 400
    assert r.json()["code"] == "capacity_exceeded"


def test_invite_existing_user_adds_directly(client):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    _, friend_id = register(client, "friend@test.com")

    r = client.post(f"/circles/{circle['id']}/invite", headers=auth(owner_token), json={"email": "Friend@test.com"})
    assert r.status_code == 200
    assert r.json()["message"] == "User added to circle"
    assert friend_id in {m["userId"] for m in r.json()["data"]["members"]}

    again = client.post(f"/circles/{circle['id']}/invite", headers=auth(owner_token), json={"email": "friend@test.com"})
    assert again.status_code == 400
    assert again.json()["code"] == "already_member"


def test_invite_unknown_email_creates_pending_invite(client, frozen_clock):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)

    r = client.post(f"/circles/{circle['id']}/invite", headers=auth(owner_token), json={"email": "ghost@test.com"})
    assert r.status_code == 200
    assert [i["email"] for i in r.json()["data"]["pendingInvites"]] == ["ghost@test.com"]

    dup = client.post(f"/circles/{circle['id']}/invite", headers=auth(owner_token), json={"email": "ghost@test.com"})
    assert dup.status_code == 400
    assert dup.json()["code"] == "duplicate_invite"

    # Expired invites are pruned, so the same address can be invited again
    frozen_clock.advance(days=8)
    again = client.post(f"/circles/{circle['id']}/invite", headers=auth(owner_token), json={"email": "ghost@test.com"})
    assert again.status_code == 200
    assert len(again.json()["data"]["pendingInvites"]) == 1


def test_invite_requires_valid_email(client):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    r = client.post(f"/circles/{circle['id']}/invite", headers=auth(owner_token), json={"email": "nope"})
    assert r.status_code == 400


def test_member_invites_can_be_disabled(client):
    circle, owner_token, _, members = setup_circle(client, member_count=1)
    member_token, _ = members[0]
    client.put(f"/circles/{circle['id']}", headers=auth(owner_token), json={"settings": {"allowMemberInvites": False}})

    r = client.post(f"/circles/{circle['id']}/invite", headers=auth(member_token), json={"email": "x@test.com"})
    assert r.status_code == 403


def test_update_circle_admin_only(client):
    circle, owner_token, _, members = setup_circle(client, member_count=2)
    member_token, _ = members[0]

    assert client.put(f"/circles/{circle['id']}", headers=auth(member_token), json={"name": "Mine"}).status_code == 403
    r = client.put(f"/circles/{circle['id']}", headers=auth(owner_token), json={"name": "Renamed"})
    assert r.status_code == 200
    assert r.json()["data"]["name"] == "Renamed"

    too_small = client.put(f"/circles/{circle['id']}", headers=auth(owner_token), json={"settings": {"maxMembers": 2}})
    assert too_small.status_code == 400
    assert too_small.json()["code"] == "capacity_exceeded"


def test_delete_circle_soft_deletes_and_drops_membership(client):
    circle, owner_token, _, members = setup_circle(client, member_count=1)
    member_token, _ = members[0]

    assert client.delete(f"/circles/{circle['id']}", headers=auth(member_token)).status_code == 403
    assert client.delete(f"/circles/{circle['id']}", headers=auth(owner_token)).status_code == 200

    assert client.get(f"/circles/{circle['id']}", headers=auth(owner_token)).status_code == 404
    assert client.get("/auth/me", headers=auth(member_token)).json()["data"]["circles"] == []

    db = TestingSessionLocal()
    assert db.get(Circle, circle["id"]).is_active is False
    db.close()


def test_membership_mutators_guard_invariants(db_session):
    from safecircle.models.user import User

    users = [User(email=f"u{i}@test.com", hashed_password="x", name=f"U{i}") for i in range(3)]
    db_session.add_all(users)
    db_session.commit()
    circle = Circle(name="Unit", created_by=users[0].id, max_members=2)
    db_session.add(circle)
    circle_service.add_member(circle, users[0].id, role="admin")

    # Adding an already active member is a no-op
    circle_service.add_member(circle, users[0].id)
    assert len(circle_service.active_members(circle)) == 1

    circle_service.add_member(circle, users[1].id)
    with pytest.raises(CapacityError):
        circle_service.add_member(circle, users[2].id)

    with pytest.raises(LastAdminError):
        circle_service.remove_member(circle, users[0].id)
    with pytest.raises(LastAdminError):
        circle_service.update_member_role(circle, users[0].id, "member")

    circle_service.remove_member(circle, users[1].id)
    assert circle_service.is_member(circle, users[1].id) is False
    assert circle_service.is_admin(circle, users[0].id) is True
    assert len(circle_service.active_admins(circle)) == 1


def test_invite_code_expiry_is_thirty_days(db_session, frozen_clock):
    from safecircle.models.user import User

    user = User(email="exp@test.com", hashed_password="x", name="Exp")
    db_session.add(user)
    db_session.commit()
    circle = Circle(name="Codes", created_by=user.id)
    circle_service.regenerate_invite_code(circle)
    assert circle.invite_code_expiry == frozen_clock.now + timedelta(days=30)
