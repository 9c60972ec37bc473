from __future__ import annotations

import json


def _place(client, to: str = "(555) 123-4567", **extra):
    return client.post("/api/calls", json={"to": to, **extra})


def test_place_call_lists_connecting_call(client):
    response = _place(client)
    assert response.status_code == 202
    payload = response.json()
    assert payload["status"] == "requested"

    calls = client.get("/api/calls").json()
    assert len(calls) == 1
    assert calls[0]["call_id"] == payload["call_id"]
    assert calls[0]["remote_address"] == "5551234567"
    assert calls[0]["direction"] == "outbound"
    assert calls[0]["status"] == "connecting"


def test_place_call_rejects_empty_destination(client):
    assert _place(client, to="() -").status_code == 422
    assert _place(client, to="").status_code == 422


def test_place_call_with_denied_microphone_returns_prompt(client):
    response = _place(client, microphone_permission="denied")
    assert response.status_code == 428
    detail = response.json()["detail"]
    assert detail["title"] == "Microphone Permission Required"
    assert detail["choices"] == ["continue_without_microphone", "open_settings", "cancel"]
    assert client.get("/api/calls").json() == []

    response = _place(client, microphone_permission="denied", continue_without_microphone=True)
    assert response.status_code == 202


def test_third_call_is_denied_by_capacity(client):
    assert _place(client, to="5550001").status_code == 202
    assert _place(client, to="5550002").status_code == 202

    response = _place(client, to="5550003")
    assert response.status_code == 409
    assert response.json()["detail"] == "Call request denied."


def test_hold_mute_and_digits_on_active_call(client):
    call_id = _place(client).json()["call_id"]

    assert client.post(f"/api/calls/{call_id}/hold", json={"on_hold": True}).status_code == 202
    assert client.post(f"/api/calls/{call_id}/mute", json={"muted": True}).status_code == 202
    assert client.post(f"/api/calls/{call_id}/digits", json={"digits": "12#"}).status_code == 202

    call = client.get(f"/api/calls/{call_id}").json()
    assert call["on_hold"] is True
    assert call["muted"] is True


def test_digits_are_validated(client):
    call_id = _place(client).json()["call_id"]

    assert client.post(f"/api/calls/{call_id}/digits", json={"digits": "12a"}).status_code == 422


def test_end_call_moves_to_disconnecting(client):
    call_id = _place(client).json()["call_id"]

    response = client.post(f"/api/calls/{call_id}/end")
    assert response.status_code == 202

    assert client.get(f"/api/calls/{call_id}").json()["status"] == "disconnecting"


def test_unknown_call_returns_404_or_409(client):
    assert client.get("/api/calls/missing").status_code == 404
    assert client.post("/api/calls/missing/hold", json={"on_hold": True}).status_code == 409
    assert client.post("/api/calls/missing/end").status_code == 409


def test_audio_route_toggle(client):
    response = client.put("/api/audio/route", json={"speaker": True})
    assert response.status_code == 200
    assert response.json() == {"speaker": True}
    assert client.get("/api/audio/route").json() == {"speaker": True}


def test_push_invite_and_cancel(client):
    invite = client.post(
        "/api/push/notifications",
        content=json.dumps(
            {"twi_message_type": "twilio.voice.call", "twi_call_sid": "CA100", "twi_from": "client:bob"}
        ),
    )
    assert invite.status_code == 200
    payload = invite.json()
    assert payload["type"] == "invite"
    assert payload["call_sid"] == "CA100"
    assert payload["call_id"]

    registration = client.get("/api/push/registration").json()
    assert registration["registration_required"] is False
    assert registration["last_binding"] is not None

    cancel = client.post(
        "/api/push/notifications",
        content=json.dumps({"twi_message_type": "twilio.voice.cancel", "twi_call_sid": "CA100"}),
    )
    assert cancel.status_code == 200
    assert cancel.json() == {"type": "cancel", "call_sid": "CA100", "call_id": None}

    orchestrator = client.app.state.orchestrator
    assert orchestrator.registry.invites() == []


def test_push_rejects_unknown_payload(client):
    response = client.post("/api/push/notifications", content=b"{\"hello\": \"world\"}")
    assert response.status_code == 400
    assert response.json()["detail"] == "Push payload has no call sid"


def test_call_events_websocket_streams_snapshots(client):
    with client.websocket_connect("/api/calls/events") as websocket:
        initial = websocket.receive_json()
        assert initial == {"event": "snapshot", "calls": []}

        call_id = _place(client).json()["call_id"]

        added = websocket.receive_json()
        assert added["event"] == "added"
        assert added["call"]["call_id"] == call_id
        assert added["call"]["status"] == "connecting"


def test_call_events_websocket_ignores_binary_frames(client):
    with client.websocket_connect("/api/calls/events") as websocket:
        assert websocket.receive_json()["event"] == "snapshot"
        websocket.send_bytes(b"\x00\x01")
        websocket.send_text("ping")

        call_id = _place(client).json()["call_id"]

        added = websocket.receive_json()
        assert added["event"] == "added"
        assert added["call"]["call_id"] == call_id
