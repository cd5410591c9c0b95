"""End-to-end flows across circles, check-ins, alerts, escalation and the socket channel."""

from datetime import timedelta

import pytest
from starlette.websockets import WebSocketDisconnect

from safecircle.core import clock
from safecircle.services import alert_service
from tests.conftest import (
    RecordingEventBus,
    TestingSessionLocal,
    auth,
    create_circle,
    join,
    location,
    raise_alert,
    register,
)


def test_circle_membership_flow(client):
    u_token, u_id = register(client, "uma@test.com", "Uma")
    circle = create_circle(client, u_token, "Roommates")
    assert [(m["userId"], m["role"]) for m in circle["members"]] == [(u_id, "admin")]
    assert circle["inviteCode"]
    assert circle["inviteCodeExpiry"] > clock.utcnow().isoformat()

    v_token, _ = register(client, "vic@test.com", "Vic")
    joined = join(client, v_token, circle["inviteCode"])
    assert joined.status_code == 200
    assert joined.json()["data"]["memberCount"] == 2

    assert client.post(f"/circles/{circle['id']}/leave", headers=auth(v_token)).status_code == 200
    data = client.get(f"/circles/{circle['id']}", headers=auth(u_token)).json()["data"]
    assert data["memberCount"] == 1
    assert [(m["userId"], m["role"]) for m in data["members"]] == [(u_id, "admin")]


def test_overdue_check_in_completed_late(client, frozen_clock):
    u_token, _ = register(client, "uma@test.com", "Uma")
    circle = create_circle(client, u_token)
    r = client.post(
        "/checkins",
        headers=auth(u_token),
        json={
            "circle": circle["id"],
            "location": location(),
            "expectedReturnTime": (frozen_clock.now + timedelta(hours=1)).isoformat(),
        },
    )
    check_in_id = r.json()["data"]["id"]

    frozen_clock.advance(hours=2)
    assert client.get(f"/checkins/{check_in_id}", headers=auth(u_token)).json()["data"]["status"] == "overdue"

    done = client.put(f"/checkins/{check_in_id}/complete", headers=auth(u_token), json={"notes": "back home"})
    data = done.json()["data"]
    assert data["status"] == "completed"
    assert data["completionStatus"] == "late"
    assert data["completionNotes"] == "back home"


def test_alert_acknowledged_then_resolved(client):
    u_token, u_id = register(client, "uma@test.com", "Uma")
    circle = create_circle(client, u_token)
    v_token, v_id = register(client, "vic@test.com", "Vic")
    join(client, v_token, circle["inviteCode"])

    alert = raise_alert(client, u_token, circle["id"], type="panic", severity="critical")

    acked = client.post(f"/alerts/{alert['id']}/acknowledge", headers=auth(v_token), json={"response": "on-my-way"})
    data = acked.json()["data"]
    assert data["status"] == "acknowledged"
    assert [(a["userId"], a["response"]) for a in data["acknowledgedBy"]] == [(v_id, "on-my-way")]

    resolved = client.put(f"/alerts/{alert['id']}/resolve", headers=auth(u_token), json={"resolutionStatus": "safe"})
    data = resolved.json()["data"]
    assert data["status"] == "resolved"
    assert data["resolution"]["resolvedBy"] == u_id

    cancel = client.put(f"/alerts/{alert['id']}/cancel", headers=auth(u_token))
    assert cancel.status_code == 400
    assert cancel.json()["code"] == "invalid_transition"


def test_unacknowledged_alert_escalates_once(client, frozen_clock):
    u_token, _ = register(client, "uma@test.com", "Uma")
    circle = create_circle(client, u_token)
    alert = raise_alert(client, u_token, circle["id"], autoEscalate={"escalateAfterMinutes": 5})
    bus = RecordingEventBus()

    frozen_clock.advance(minutes=5)
    for _ in range(2):
        db = TestingSessionLocal()
        try:
            alert_service.run_escalation_sweep(db, bus)
        finally:
            db.close()

    data = client.get(f"/alerts/{alert['id']}", headers=auth(u_token)).json()["data"]
    assert data["autoEscalate"]["escalated"] is True
    assert data["priority"] == 5
    assert [entry["action"] for entry in data["activityLog"]].count("escalated") == 1
    assert len(bus.named("alert.escalated")) == 1


def test_bad_credential_never_sees_alerts(client):
    u_token, _ = register(client, "uma@test.com", "Uma")
    circle = create_circle(client, u_token)
    v_token, _ = register(client, "vic@test.com", "Vic")
    join(client, v_token, circle["inviteCode"])

    with client.websocket_connect(f"/ws?token={v_token}x") as ws:
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_text()
        assert exc.value.code == 4401

    channel = client.app.state.channel
    assert channel.total_connections == 0
    assert channel.group_members(f"circle:{circle['id']}") == set()
    raise_alert(client, u_token, circle["id"])
