# tests/test_matrix_push.py

from __future__ import annotations

import json
from dataclasses import replace

import pytest
from nio import JoinResponse, LoginResponse, RoomSendResponse

from task_defender.connectors import matrix_push
from task_defender.connectors.matrix_push import MatrixPushNotifier


class FakeAsyncClient:
    """Stands in for nio.AsyncClient; records calls, never touches the network."""

    instances: list[FakeAsyncClient] = []
    login_ok = True

    def __init__(self, homeserver: str, user: str = "", **kwargs) -> None:
        self.homeserver = homeserver
        self.user_id = user
        self.device_id = ""
        self.access_token = ""
        self.logins = 0
        self.joined: list[str] = []
        self.sent: list[dict] = []
        self.redacted: list[str] = []
        self.closed = False
        FakeAsyncClient.instances.append(self)

    async def login(self, password: str, device_name: str = ""):
        self.logins += 1
        if not FakeAsyncClient.login_ok:
            return "M_FORBIDDEN"
        self.device_id = "DEV1"
        self.access_token = "tok"
        return LoginResponse(self.user_id, "DEV1", "tok")

    async def join(self, room_id: str):
        self.joined.append(room_id)
        return JoinResponse(room_id)

    async def room_send(self, room_id: str, message_type: str, content: dict):
        self.sent.append(content)
        return RoomSendResponse(f"$ev{len(self.sent)}", room_id)

    async def room_redact(self, room_id: str, event_id: str, reason: str = ""):
        self.redacted.append(event_id)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture()
def matrix_settings(settings, tmp_path):
    return replace(
        settings,
        matrix_homeserver="https://matrix.example.org",
        matrix_user_id="@defender:example.org",
        matrix_password="secret",
        matrix_room="!room:example.org",
        matrix_store_path=tmp_path / "matrix",
    )


@pytest.fixture(autouse=True)
def fake_nio(monkeypatch):
    FakeAsyncClient.instances = []
    FakeAsyncClient.login_ok = True
    monkeypatch.setattr(matrix_push, "AsyncClient", FakeAsyncClient)
    return FakeAsyncClient


@pytest.mark.asyncio
async def test_first_login_saves_session_and_second_start_reuses_it(matrix_settings) -> None:
    first = MatrixPushNotifier(matrix_settings)
    assert first.permission() == "default"
    assert await first.request_permission() == "granted"

    client = FakeAsyncClient.instances[-1]
    assert client.logins == 1
    assert client.joined == ["!room:example.org"]
    session = json.loads((matrix_settings.matrix_store_path / "session.json").read_text("utf-8"))
    assert session == {"user_id": "@defender:example.org", "device_id": "DEV1", "access_token": "tok"}

    second = MatrixPushNotifier(replace(matrix_settings, matrix_password=""))
    assert await second.request_permission() == "granted"
    restored = FakeAsyncClient.instances[-1]
    assert restored.logins == 0
    assert restored.access_token == "tok"


@pytest.mark.asyncio
async def test_failed_login_denies_and_is_not_retried(matrix_settings) -> None:
    FakeAsyncClient.login_ok = False
    notifier = MatrixPushNotifier(matrix_settings)

    assert await notifier.request_permission() == "denied"
    assert FakeAsyncClient.instances[-1].closed
    assert await notifier.request_permission() == "denied"
    assert len(FakeAsyncClient.instances) == 1


@pytest.mark.asyncio
async def test_notify_sends_notice_and_clear_redacts_it(matrix_settings) -> None:
    client = FakeAsyncClient("https://matrix.example.org")
    notifier = MatrixPushNotifier(matrix_settings, client=client)
    assert notifier.permission() == "granted"

    await notifier.notify("Stretch (Reminder #2)", "Stand up", "r1-continuous")
    assert client.sent == [{"msgtype": "m.notice", "body": "Stretch (Reminder #2)\nStand up"}]

    await notifier.clear("r1-continuous")
    await notifier.clear("r1-continuous")
    assert client.redacted == ["$ev1"]

    await notifier.close()
    assert client.closed
