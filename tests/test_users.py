"""User profile, privacy, location and emergency contact tests."""

from safecircle.core.events import LOCATION_UPDATED
from tests.conftest import auth, register, setup_circle


def test_update_profile(client):
    token, _ = register(client, "prof@test.com", "Prof")
    r = client.put("/users/profile", headers=auth(token), json={"name": "  Professor ", "bio": "Hi"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["name"] == "Professor"
    assert data["bio"] == "Hi"


def test_update_privacy_partial(client):
    token, _ = register(client, "priv@test.com")
    r = client.put("/users/privacy", headers=auth(token), json={"visibleToCircleMembers": False})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["visibleToCircleMembers"] is False
    assert data["shareLocationWithCircles"] is True


def test_location_update_is_broadcast_to_circles(client, events):
    circle, owner_token, owner_id, _ = setup_circle(client, member_count=1)
    r = client.put("/users/location", headers=auth(owner_token), json={"longitude": 2.35, "latitude": 48.85})
    assert r.status_code == 200
    assert r.json()["data"]["coordinates"] == [2.35, 48.85]

    published = events.named(LOCATION_UPDATED)
    assert len(published) == 1
    assert published[0].group == f"circle:{circle['id']}"
    assert published[0].data["userId"] == owner_id
    assert published[0].data["coordinates"] == [2.35, 48.85]


def test_location_update_suppressed_when_opted_out(client, events):
    _, owner_token, _, _ = setup_circle(client, member_count=1)
    client.put("/users/privacy", headers=auth(owner_token), json={"shareLocationWithCircles": False})
    r = client.put("/users/location", headers=auth(owner_token), json={"longitude": 2.35, "latitude": 48.85})
    assert r.status_code == 200
    assert events.named(LOCATION_UPDATED) == []


def test_location_update_rejects_bad_coordinates(client):
    token, _ = register(client, "badloc@test.com")
    r = client.put("/users/location", headers=auth(token), json={"longitude": 200, "latitude": 10})
    assert r.status_code == 400


def test_location_sharing_requires_boolean(client):
    token, _ = register(client, "share@test.com")
    assert client.put("/users/location/sharing", headers=auth(token), json={"isSharing": "yes"}).status_code == 400
    r = client.put("/users/location/sharing", headers=auth(token), json={"isSharing": True})
    assert r.status_code == 200
    assert r.json()["data"]["isLocationSharing"] is True


def test_public_profile_respects_privacy(client):
    circle, owner_token, owner_id, members = setup_circle(client, member_count=1)
    member_token, _ = members[0]
    client.put("/users/location", headers=auth(owner_token), json={"longitude": 1.0, "latitude": 2.0})

    full = client.get(f"/users/{owner_id}", headers=auth(member_token)).json()["data"]
    assert full["email"] == "owner@test.com"
    assert full["lastKnownLocation"]["coordinates"] == [1.0, 2.0]

    client.put("/users/privacy", headers=auth(owner_token), json={"shareLocationWithCircles": False})
    no_loc = client.get(f"/users/{owner_id}", headers=auth(member_token)).json()["data"]
    assert no_loc["lastKnownLocation"] is None

    client.put("/users/privacy", headers=auth(owner_token), json={"visibleToCircleMembers": False})
    reduced = client.get(f"/users/{owner_id}", headers=auth(member_token)).json()["data"]
    assert reduced == {"id": owner_id, "name": "Owner", "profilePhoto": ""}


def test_public_profile_not_found(client):
    token, _ = register(client, "nobody@test.com")
    assert client.get("/users/9999", headers=auth(token)).status_code == 404


def test_emergency_contacts_crud(client):
    token, _ = register(client, "ec@test.com")
    r = client.post(
        "/users/emergency-contacts",
        headers=auth(token),
        json={"name": "Mom", "phone": "+1 555 0101", "relationship": "parent"},
    )
    assert r.status_code == 201
    contact = r.json()["data"]
    assert contact["relationship"] == "parent"

    r = client.put(f"/users/emergency-contacts/{contact['id']}", headers=auth(token), json={"phone": "+1 555 0199"})
    assert r.status_code == 200
    assert r.json()["data"]["phone"] == "+1 555 0199"

    profile = client.get("/users/profile", headers=auth(token)).json()["data"]
    assert [c["name"] for c in profile["emergencyContacts"]] == ["Mom"]

    assert client.delete(f"/users/emergency-contacts/{contact['id']}", headers=auth(token)).status_code == 200
    assert client.delete(f"/users/emergency-contacts/{contact['id']}", headers=auth(token)).status_code == 404


def test_cannot_touch_someone_elses_contact(client):
    token_a, _ = register(client, "a@test.com")
    token_b, _ = register(client, "b@test.com")
    contact = client.post(
        "/users/emergency-contacts", headers=auth(token_a), json={"name": "Dad", "phone": "123"}
    ).json()["data"]
    r = client.put(f"/users/emergency-contacts/{contact['id']}", headers=auth(token_b), json={"name": "X"})
    assert r.status_code == 404
