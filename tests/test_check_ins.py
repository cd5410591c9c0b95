"""Check-in lifecycle tests."""

from datetime import timedelta

from safecircle.core import clock
from safecircle.models.check_in import CheckIn
from safecircle.services import check_in_service
from tests.conftest import RecordingEventBus, TestingSessionLocal, auth, location, register, setup_circle


def create_check_in(client, token, circle_id, minutes=60, **extra):
    body = {
        "circle": circle_id,
        "location": location(),
        "expectedReturnTime": (clock.utcnow() + timedelta(minutes=minutes)).isoformat(),
        **extra,
    }
    r = client.post("/checkins", headers=auth(token), json=body)
    assert r.status_code == 201, r.text
    return r.json()["data"]


def test_create_check_in(client, events, frozen_clock):
    circle, _, _, members = setup_circle(client, member_count=1)
    token, user_id = members[0]

    data = create_check_in(client, token, circle["id"], notes="Evening run")
    assert data["status"] == "active"
    assert data["user"]["id"] == user_id
    assert data["circleId"] == circle["id"]
    assert data["location"]["coordinates"] == [-122.42, 37.77]
    assert data["isOverdue"] is False
    assert data["timeRemainingSeconds"] == 3600

    created = events.named("checkin.created")
    assert len(created) == 1
    assert created[0].group == f"circle:{circle['id']}"
    assert created[0].data["checkIn"]["id"] == data["id"]

    stats = client.get(f"/circles/{circle['id']}", headers=auth(token)).json()["data"]["stats"]
    assert stats["totalCheckIns"] == 1


def test_channel_events_ignore_notification_preferences(client, events):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    check_in = create_check_in(client, owner_token, circle["id"], notifyOnStart=False, notifyOnComplete=False)
    assert check_in["notifications"]["notifyOnStart"] is False
    client.put(f"/checkins/{check_in['id']}/complete", headers=auth(owner_token))

    assert [e.data["checkIn"]["id"] for e in events.named("checkin.created")] == [check_in["id"]]
    assert [e.data["checkInId"] for e in events.named("checkin.completed")] == [check_in["id"]]


def test_create_check_in_rejects_past_deadline(client):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    r = client.post(
        "/checkins",
        headers=auth(owner_token),
        json={
            "circle": circle["id"],
            "location": location(),
            "expectedReturnTime": (clock.utcnow() - timedelta(minutes=1)).isoformat(),
        },
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Expected return time must be in the future"


def test_create_check_in_requires_membership(client):
    circle, _, _, _ = setup_circle(client, member_count=0)
    outsider, _ = register(client, "outsider@test.com")
    r = client.post(
        "/checkins",
        headers=auth(outsider),
        json={
            "circle": circle["id"],
            "location": location(),
            "expectedReturnTime": (clock.utcnow() + timedelta(hours=1)).isoformat(),
        },
    )
    assert r.status_code == 403


def test_create_check_in_validates_coordinates(client):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    r = client.post(
        "/checkins",
        headers=auth(owner_token),
        json={
            "circle": circle["id"],
            "location": {"coordinates": [200, 10]},
            "expectedReturnTime": (clock.utcnow() + timedelta(hours=1)).isoformat(),
        },
    )
    assert r.status_code == 400


def test_complete_early(client, events, frozen_clock):
    circle, owner_token, owner_id, _ = setup_circle(client, member_count=0)
    check_in = create_check_in(client, owner_token, circle["id"])

    frozen_clock.advance(minutes=30)
    r = client.put(f"/checkins/{check_in['id']}/complete", headers=auth(owner_token), json={"notes": "Home"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["status"] == "completed"
    assert data["completionStatus"] == "early"
    assert data["completionNotes"] == "Home"
    assert data["timeRemainingSeconds"] == 0
    assert data["durationSeconds"] == 1800

    completed = events.named("checkin.completed")
    assert completed[0].data == {"checkInId": check_in["id"], "userId": owner_id, "completionStatus": "early"}


def test_overdue_is_visible_before_any_sweep(client, frozen_clock):
    circle, owner_token, _, members = setup_circle(client, member_count=1)
    member_token, _ = members[0]
    check_in = create_check_in(client, owner_token, circle["id"], minutes=30)

    frozen_clock.advance(minutes=31)
    r = client.get(f"/checkins/{check_in['id']}", headers=auth(member_token))
    assert r.json()["data"]["status"] == "overdue"
    assert r.json()["data"]["isOverdue"] is True

    overdue = client.get("/checkins/overdue", headers=auth(member_token)).json()
    assert [c["id"] for c in overdue["data"]] == [check_in["id"]]

    filtered = client.get(f"/checkins/circle/{circle['id']}?status=overdue", headers=auth(member_token)).json()
    assert [c["id"] for c in filtered["data"]] == [check_in["id"]]
    still_active = client.get(f"/checkins/circle/{circle['id']}?status=active", headers=auth(member_token)).json()
    assert still_active["data"] == []


def test_complete_late_from_overdue(client, frozen_clock):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    check_in = create_check_in(client, owner_token, circle["id"], minutes=10)

    frozen_clock.advance(minutes=45)
    r = client.put(f"/checkins/{check_in['id']}/complete", headers=auth(owner_token))
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "completed"
    assert r.json()["data"]["completionStatus"] == "late"


def test_terminal_check_ins_reject_transitions(client):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    done = create_check_in(client, owner_token, circle["id"])
    client.put(f"/checkins/{done['id']}/complete", headers=auth(owner_token))

    for action in ("complete", "cancel"):
        r = client.put(f"/checkins/{done['id']}/{action}", headers=auth(owner_token))
        assert r.status_code == 400
        assert r.json()["code"] == "invalid_transition"

    cancelled = create_check_in(client, owner_token, circle["id"])
    assert client.put(f"/checkins/{cancelled['id']}/cancel", headers=auth(owner_token)).status_code == 200
    r = client.put(f"/checkins/{cancelled['id']}/complete", headers=auth(owner_token))
    assert r.status_code == 400


def test_cancel_overdue_check_in(client, events, frozen_clock):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    check_in = create_check_in(client, owner_token, circle["id"], minutes=5)
    frozen_clock.advance(minutes=6)

    r = client.put(f"/checkins/{check_in['id']}/cancel", headers=auth(owner_token))
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "cancelled"
    assert len(events.named("checkin.cancelled")) == 1


def test_only_owner_mutates(client):
    circle, owner_token, _, members = setup_circle(client, member_count=1)
    member_token, _ = members[0]
    check_in = create_check_in(client, owner_token, circle["id"])

    assert client.put(f"/checkins/{check_in['id']}/complete", headers=auth(member_token)).status_code == 403
    assert client.put(f"/checkins/{check_in['id']}/cancel", headers=auth(member_token)).status_code == 403
    assert client.delete(f"/checkins/{check_in['id']}", headers=auth(member_token)).status_code == 403
    r = client.put(
        f"/checkins/{check_in['id']}/location",
        headers=auth(member_token),
        json={"longitude": 1, "latitude": 1},
    )
    assert r.status_code == 403


def test_location_updates_append_bounded_history(client, frozen_clock):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    check_in = create_check_in(client, owner_token, circle["id"], minutes=600)

    for i in range(55):
        frozen_clock.advance(seconds=1)
        r = client.put(
            f"/checkins/{check_in['id']}/location",
            headers=auth(owner_token),
            json={"longitude": float(i), "latitude": 10.0},
        )
        assert r.status_code == 200

    data = r.json()["data"]
    assert data["location"]["coordinates"] == [54.0, 10.0]
    history = data["locationHistory"]
    assert len(history) == 50
    assert history[0]["coordinates"] == [5.0, 10.0]
    assert history[-1]["coordinates"] == [54.0, 10.0]


def test_location_update_only_while_active(client, frozen_clock):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    check_in = create_check_in(client, owner_token, circle["id"], minutes=5)
    frozen_clock.advance(minutes=10)

    r = client.put(
        f"/checkins/{check_in['id']}/location",
        headers=auth(owner_token),
        json={"longitude": 1, "latitude": 1},
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Can only update location for active check-ins"


def test_acknowledge_upserts_per_member(client):
    circle, owner_token, _, members = setup_circle(client, member_count=2)
    (m0, m0_id), (m1, m1_id) = members
    check_in = create_check_in(client, owner_token, circle["id"])
    outsider, _ = register(client, "outsider@test.com")

    client.post(f"/checkins/{check_in['id']}/acknowledge", headers=auth(m0), json={"message": "Seen"})
    client.post(f"/checkins/{check_in['id']}/acknowledge", headers=auth(m1))
    r = client.post(f"/checkins/{check_in['id']}/acknowledge", headers=auth(m0), json={"message": "Still watching"})
    acks = r.json()["data"]["acknowledgments"]
    assert len(acks) == 2
    assert {a["userId"]: a["message"] for a in acks} == {m0_id: "Still watching", m1_id: ""}

    assert client.post(f"/checkins/{check_in['id']}/acknowledge", headers=auth(outsider)).status_code == 403


def test_former_member_cannot_view_or_acknowledge(client):
    circle, owner_token, _, members = setup_circle(client, member_count=1)
    member_token, _ = members[0]
    check_in = create_check_in(client, owner_token, circle["id"])
    client.post(f"/circles/{circle['id']}/leave", headers=auth(member_token))

    assert client.get(f"/checkins/{check_in['id']}", headers=auth(member_token)).status_code == 403
    assert client.post(f"/checkins/{check_in['id']}/acknowledge", headers=auth(member_token)).status_code == 403


def test_lists(client, frozen_clock):
    circle, owner_token, _, members = setup_circle(client, member_count=1)
    member_token, _ = members[0]
    soon = create_check_in(client, owner_token, circle["id"], minutes=10)
    later = create_check_in(client, owner_token, circle["id"], minutes=120)
    done = create_check_in(client, owner_token, circle["id"])
    client.put(f"/checkins/{done['id']}/complete", headers=auth(owner_token))

    mine = client.get("/checkins", headers=auth(owner_token)).json()
    assert mine["count"] == 3
    completed = client.get("/checkins?status=completed", headers=auth(owner_token)).json()
    assert [c["id"] for c in completed["data"]] == [done["id"]]

    active = client.get("/checkins/active", headers=auth(owner_token)).json()
    assert [c["id"] for c in active["data"]] == [soon["id"], later["id"]]

    circle_active = client.get(f"/checkins/circle/{circle['id']}/active", headers=auth(member_token)).json()
    assert [c["id"] for c in circle_active["data"]] == [soon["id"], later["id"]]

    outsider, _ = register(client, "outsider@test.com")
    assert client.get(f"/checkins/circle/{circle['id']}", headers=auth(outsider)).status_code == 403
    assert client.get("/checkins/overdue", headers=auth(outsider)).json()["data"] == []


def test_delete_hides_check_in(client):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    check_in = create_check_in(client, owner_token, circle["id"])

    assert client.delete(f"/checkins/{check_in['id']}", headers=auth(owner_token)).status_code == 200
    assert client.get(f"/checkins/{check_in['id']}", headers=auth(owner_token)).status_code == 404
    assert client.get("/checkins", headers=auth(owner_token)).json()["data"] == []


def test_materialize_overdue_announces_once(client, frozen_clock):
    circle, owner_token, _, _ = setup_circle(client, member_count=0)
    overdue = create_check_in(client, owner_token, circle["id"], minutes=5)
    quiet = create_check_in(client, owner_token, circle["id"], minutes=5, notifyIfOverdue=False)
    pending = create_check_in(client, owner_token, circle["id"], minutes=120)
    frozen_clock.advance(minutes=6)

    bus = RecordingEventBus()
    db = TestingSessionLocal()
    try:
        assert check_in_service.materialize_overdue(db, bus) == [overdue["id"]]
        assert check_in_service.materialize_overdue(db, bus) == []

        statuses = {row.id: row.status for row in db.query(CheckIn).all()}
        assert statuses == {overdue["id"]: "overdue", quiet["id"]: "overdue", pending["id"]: "active"}
    finally:
        db.close()

    published = bus.named("checkin.overdue")
    assert len(published) == 1
    assert published[0].data["checkInId"] == overdue["id"]
    assert published[0].data["checkIn"]["status"] == "overdue"
    assert published[0].data["checkIn"]["notifications"]["overdueNotificationSent"] is True
