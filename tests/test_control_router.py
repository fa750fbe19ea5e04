from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from chatspeak.app import create_app
from chatspeak.config import get_settings
from chatspeak.utils import files as files_module


class QuietEngine:
    name = "system"

    def __init__(self) -> None:
        self.spoken: list[str] = []

    async def speak(self, text: str, *, voice: str | None = None, rate: float = 1.0) -> None:
        self.spoken.append(text)

    def list_voices(self) -> list[dict[str, str]]:
        return [{"id": "es-mx", "name": "Spanish (Mexico)"}]


@pytest.fixture
def client(monkeypatch, tmp_path: Path) -> Generator[TestClient, None, None]:
    monkeypatch.setenv("CHATSPEAK_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("EVENT_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("LOGGING_SETTINGS_PATH", str(tmp_path / "logging_settings.conf"))
    monkeypatch.delenv("FEED_URL", raising=False)
    get_settings.cache_clear()

    app = create_app(engines={"system": QuietEngine()})

    with TestClient(app) as test_client:
        # Keep messages in the queue so tests can inspect it.
        assert test_client.post("/api/tts", json={"enabled": False}).status_code == 200
        yield test_client

    get_settings.cache_clear()


def test_health_and_status(client: TestClient) -> None:
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["feed"] == "idle"

    status = client.get("/api/status").json()
    assert status == {"tts_enabled": False, "speaking": False, "queue_size": 0}


def test_toggle_speech_persists_setting(client: TestClient, tmp_path: Path) -> None:
    assert client.post("/api/tts", json={"enabled": True}).json() == {
        "ok": True,
        "tts_enabled": True,
    }
    assert client.get("/api/settings").json()["tts_enabled"] is True
    assert '"tts_enabled": true' in (tmp_path / "data" / "settings.json").read_text()


def test_test_messages_skip_and_clear(client: TestClient) -> None:
    response = client.post(
        "/api/queue/test",
        json={"text": "probando uno dos", "count": 3},
    )
    assert response.status_code == 200
    body = response.json()
    assert (body["ok"], body["added"], body["dropped"]) == (True, 3, 0)

    queue = client.get("/api/queue").json()
    assert queue["size"] == 3
    assert queue["capacity"] == 6
    assert [item["origin"] for item in queue["items"]] == ["manual"] * 3

    first_id = body["messages"][0]["id"]
    assert client.post("/api/queue/skip", json={"id": first_id}).json() == {"ok": True}
    assert client.post("/api/queue/skip", json={"id": first_id}).status_code == 404

    assert client.post("/api/queue/clear").json() == {"ok": True, "removed": 2}
    assert client.get("/api/status").json()["queue_size"] == 0


def test_test_message_rejected_by_filter(client: TestClient) -> None:
    body = client.post("/api/queue/test", json={"text": "visita www.spam.com ahora"}).json()
    assert body["ok"] is False
    assert body["reason"] == "url"
    assert body["added"] == 0

    history = client.get("/api/history").json()
    assert history[-1]["outcome"] == "blocked"
    assert history[-1]["reason"] == "url"


def test_test_message_count_is_validated(client: TestClient) -> None:
    assert client.post("/api/queue/test", json={"text": "hola", "count": 0}).status_code == 422
    assert client.post("/api/queue/test", json={"count": 1}).status_code == 422


def test_ban_and_unban(client: TestClient) -> None:
    response = client.post("/api/ban", json={"sender_id": "@troll", "minutes": 10})
    assert response.status_code == 200
    ban = response.json()["ban"]
    assert ban["expires_at_ms"] - ban["created_at_ms"] == 10 * 60 * 1000

    users = client.get("/api/bans").json()["users"]
    assert users["troll"]["reason"] == "manual"

    assert client.post("/api/unban", json={"sender_id": "troll"}).json() == {
        "ok": True,
        "removed": True,
    }
    assert client.get("/api/bans").json() == {"users": {}}


def test_permanent_ban(client: TestClient) -> None:
    ban = client.post("/api/ban", json={"sender_id": "troll", "minutes": None}).json()["ban"]
    assert ban["expires_at_ms"] is None


def test_ban_requires_sender(client: TestClient) -> None:
    assert client.post("/api/ban", json={"sender_id": "  @ "}).status_code == 400
    assert client.post("/api/unban", json={"sender_id": ""}).status_code == 400
    assert client.post("/api/ban", json={}).status_code == 422


def test_lists_replace_and_add_word(client: TestClient) -> None:
    response = client.post("/api/lists", json={"exact": "# groserias\nuno\ndos\n"})
    assert response.json() == {"ok": True}
    assert client.get("/api/lists").json() == {"exact": ["uno", "dos"], "substring": []}

    added = client.post("/api/badwords/add", json={"word": "Ménso!", "mode": "substring"})
    assert added.json() == {"ok": True, "word": "menso", "mode": "substring"}
    assert client.get("/api/lists").json()["substring"] == ["menso"]

    blocked = client.post("/api/queue/test", json={"text": "eres mensote"}).json()
    assert blocked["reason"] == "badword_joined"


def test_add_word_rejects_short_words(client: TestClient) -> None:
    response = client.post("/api/badwords/add", json={"word": "a!"})
    assert response.status_code == 400


def test_settings_update_clamps_and_ignores_unknown(client: TestClient) -> None:
    response = client.post(
        "/api/settings",
        json={"tts_rate": 5, "history_size": 2, "made_up": 1, "piper": {"volume": 3}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["settings"]["tts_rate"] == 2.0
    assert body["settings"]["history_size"] == 5
    assert body["settings"]["piper"]["volume"] == 2.0
    assert "made_up" not in body["settings"]


def test_settings_update_rejects_wrong_types(client: TestClient) -> None:
    response = client.post("/api/settings", json={"max_queue": "many"})
    assert response.status_code == 422
    assert client.get("/api/settings").json()["max_queue"] == 6


def test_settings_reset(client: TestClient) -> None:
    client.post("/api/settings", json={"max_words": 4})
    body = client.post("/api/settings/reset").json()
    assert body["settings"]["max_words"] == 20
    assert body["settings"]["tts_enabled"] is True


def test_voices_come_from_system_engine(client: TestClient) -> None:
    assert client.get("/api/tts/voices").json() == {
        "voices": [{"id": "es-mx", "name": "Spanish (Mexico)"}]
    }


def test_feed_without_url_reports_error(client: TestClient) -> None:
    assert client.get("/api/feed/status").json()["status"] == "idle"
    body = client.post("/api/feed/connect").json()
    assert body["ok"] is False
    assert body["error"] == "missing_feed_url"
    assert body["feed"]["status"] == "error"

    body = client.post("/api/feed/disconnect").json()
    assert body["feed"]["status"] == "idle"


def test_observer_receives_snapshots_then_changes(client: TestClient) -> None:
    with client.websocket_connect("/ws") as websocket:
        initial = [websocket.receive_json()["type"] for _ in range(8)]
        assert initial == [
            "status",
            "queue",
            "bans",
            "lists",
            "settings",
            "feed_status",
            "history_bulk",
            "log_bulk",
        ]

        client.post("/api/settings", json={"max_chars": 90})
        message = websocket.receive_json()
        assert message["type"] == "settings"
        assert message["data"]["max_chars"] == 90


def test_event_log_file_is_written(client: TestClient, tmp_path: Path) -> None:
    client.post("/api/queue/test", json={"text": "mira www.spam.com"})
    log_files = list((tmp_path / "logs").rglob("events_*.log"))
    assert len(log_files) == 1
    content = log_files[0].read_text(encoding="utf-8")
    assert '"type": "blocked_filter"' in content


def test_failed_writes_return_500(client: TestClient, monkeypatch) -> None:
    def refuse(src, dst):
        raise PermissionError(13, "Permission denied", str(dst))

    monkeypatch.setattr(files_module.os, "replace", refuse)

    response = client.post("/api/ban", json={"sender_id": "troll", "minutes": 10})
    assert response.status_code == 500
    assert "Cannot write" in response.json()["detail"]
    assert client.get("/api/bans").json() == {"users": {}}

    assert client.post("/api/settings", json={"max_queue": 3}).status_code == 500
    assert client.get("/api/settings").json()["max_queue"] == 6
    assert client.post("/api/lists", json={"exact": "uno\n"}).status_code == 500
    assert client.post("/api/badwords/add", json={"word": "menso"}).status_code == 500
