import time

from codepair.services.code_templates import DEFAULT_CODE


def _reclaim_delay(client) -> float:
    return client.app.state.settings.room_reclaim_delay_seconds


def _create_room(client, **payload) -> str:
    response = client.post("/api/rooms", json=payload or None)
    assert response.status_code == 201
    return response.json()["roomId"]


def _join(ws, room_id: str) -> tuple[dict, dict]:
    ws.send_json({"type": "join-room", "roomId": room_id})
    loaded = ws.receive_json()
    info = ws.receive_json()
    assert loaded["type"] == "load-code"
    assert info["type"] == "room-info"
    return loaded, info


def test_join_missing_room_reports_room_error(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "join-room", "roomId": "no-such-room"})
        assert ws.receive_json() == {"type": "room-error", "message": "Room does not exist"}

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_code_sync_scenario_ends_with_reclamation(client):
    created = client.post("/api/rooms").json()
    room_id = created["roomId"]
    assert created["url"] == "/room/" + room_id

    with client.websocket_connect("/ws") as ws_b:
        with client.websocket_connect("/ws") as ws_a:
            loaded, info = _join(ws_a, room_id)
            assert loaded["content"] == DEFAULT_CODE["javascript"]
            assert info["participantCount"] == 1

            _join(ws_b, room_id)
            assert ws_a.receive_json() == {"type": "user-joined", "participantCount": 2}
            assert client.get(f"/api/rooms/{room_id}").json()["participantCount"] == 2

            ws_a.send_json({"type": "code-change", "roomId": room_id, "content": "x=1"})
            assert ws_b.receive_json() == {"type": "code-update", "content": "x=1"}

            # The next message A sees is its own pong, not an echo of the change.
            ws_a.send_json({"type": "ping"})
            assert ws_a.receive_json() == {"type": "pong"}

        assert ws_b.receive_json() == {"type": "user-left", "participantCount": 1}

    assert client.get(f"/api/rooms/{room_id}").status_code == 200

    time.sleep(_reclaim_delay(client) * 2)
    assert client.get(f"/api/rooms/{room_id}").status_code == 404


def test_content_round_trips_to_next_joiner(client):
    room_id = _create_room(client)

    with client.websocket_connect("/ws") as writer:
        _join(writer, room_id)
        writer.send_json({"type": "code-change", "roomId": room_id, "content": "let y = 2;"})
        writer.send_json({"type": "ping"})
        assert writer.receive_json() == {"type": "pong"}

        with client.websocket_connect("/ws") as reader:
            loaded, info = _join(reader, room_id)
            assert loaded["content"] == "let y = 2;"
            assert info["participantCount"] == 2


def test_rejoin_within_grace_period_keeps_last_content(client):
    room_id = _create_room(client)

    with client.websocket_connect("/ws") as writer:
        _join(writer, room_id)
        writer.send_json({"type": "code-change", "roomId": room_id, "content": "kept = True"})
        writer.send_json({"type": "ping"})
        assert writer.receive_json() == {"type": "pong"}

    with client.websocket_connect("/ws") as first:
        loaded, _ = _join(first, room_id)
        assert loaded["content"] == "kept = True"

        with client.websocket_connect("/ws") as second:
            loaded, info = _join(second, room_id)
            assert loaded["content"] == "kept = True"
            assert info["participantCount"] == 2

            time.sleep(_reclaim_delay(client) * 2)
            summary = client.get(f"/api/rooms/{room_id}")
            assert summary.status_code == 200
            assert summary.json()["participantCount"] == 2


def test_cursor_and_execution_notices_are_relayed(client):
    room_id = _create_room(client)

    with client.websocket_connect("/ws") as watcher:
        _join(watcher, room_id)
        with client.websocket_connect("/ws") as sender:
            _join(sender, room_id)
            assert watcher.receive_json()["type"] == "user-joined"

            sender.send_json(
                {"type": "cursor-change", "roomId": room_id, "position": {"lineNumber": 2}}
            )
            cursor = watcher.receive_json()
            assert cursor["type"] == "cursor-update"
            assert cursor["position"] == {"lineNumber": 2}
            assert cursor["senderId"]

            sender.send_json(
                {"type": "code-executed", "roomId": room_id, "timestamp": "2026-10-19T10:00:00Z"}
            )
            notice = watcher.receive_json()
            assert notice == {
                "type": "execution-notification",
                "senderId": cursor["senderId"],
                "timestamp": "2026-10-19T10:00:00Z",
            }


def test_events_for_missing_room_are_dropped_silently(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "code-change", "roomId": "gone", "content": "x"})
        ws.send_json({"type": "cursor-change", "roomId": "gone", "position": 1})
        ws.send_json({"type": "code-executed", "roomId": "gone", "timestamp": "now"})
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_malformed_messages_get_error_replies(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "detail": "Invalid JSON"}

        ws.send_json(["join-room"])
        assert ws.receive_json() == {"type": "error", "detail": "Invalid message format"}

        ws.send_json({"type": "shout"})
        assert ws.receive_json() == {"type": "error", "detail": "Unsupported message type"}

        ws.send_json({"type": "join-room"})
        assert ws.receive_json() == {"type": "error", "detail": "roomId is required"}

        ws.send_json({"type": "code-change", "roomId": "abc", "content": 42})
        assert ws.receive_json() == {"type": "error", "detail": "content must be a string"}

        ws.send_bytes(b"\x00\x01")
        assert ws.receive_json() == {"type": "error", "detail": "Invalid message format"}

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_execute_code_streams_result_to_all_members(client):
    room_id = _create_room(client, language="python")

    with client.websocket_connect("/ws") as runner:
        _join(runner, room_id)
        with client.websocket_connect("/ws") as watcher:
            _join(watcher, room_id)
            assert runner.receive_json()["type"] == "user-joined"

            runner.send_json({"type": "execute-code", "roomId": room_id})

            for ws in (runner, watcher):
                result = ws.receive_json()
                assert result["type"] == "execution-result"
                assert result["language"] == "python"
                assert result["output"][0]["type"] == "log"
                assert result["output"][0]["content"] == "Hello, World!"
                assert result["output"][-1]["type"] == "success"


def test_edits_are_relayed_while_execution_runs(client):
    room_id = _create_room(client, language="python")
    slow_code = "import time\ntime.sleep(1.5)\nprint('done')"

    with client.websocket_connect("/ws") as runner:
        _join(runner, room_id)
        with client.websocket_connect("/ws") as watcher:
            _join(watcher, room_id)
            assert runner.receive_json()["type"] == "user-joined"

            runner.send_json({"type": "code-change", "roomId": room_id, "content": slow_code})
            assert watcher.receive_json() == {"type": "code-update", "content": slow_code}

            started = time.monotonic()
            runner.send_json({"type": "execute-code", "roomId": room_id})
            runner.send_json({"type": "execute-code", "roomId": room_id})
            assert runner.receive_json() == {
                "type": "error",
                "detail": "Execution already in progress",
            }
            runner.send_json({"type": "code-change", "roomId": room_id, "content": "edited"})

            assert watcher.receive_json() == {"type": "code-update", "content": "edited"}
            assert time.monotonic() - started < 1.0

            result = watcher.receive_json()
            assert result["type"] == "execution-result"
            assert result["output"][0] == {
                "type": "log",
                "content": "done",
                "timestamp": result["output"][0]["timestamp"],
            }
            assert runner.receive_json()["type"] == "execution-result"


def test_disconnect_during_execution_releases_membership(client):
    room_id = _create_room(client, language="python")

    with client.websocket_connect("/ws") as runner:
        _join(runner, room_id)
        runner.send_json(
            {"type": "code-change", "roomId": room_id, "content": "while True:\n    pass"}
        )
        runner.send_json({"type": "execute-code", "roomId": room_id})
        runner.send_json({"type": "ping"})
        assert runner.receive_json() == {"type": "pong"}

    time.sleep(0.2)
    assert client.get(f"/api/rooms/{room_id}").json()["participantCount"] == 0

    time.sleep(_reclaim_delay(client) * 2)
    assert client.get(f"/api/rooms/{room_id}").status_code == 404
