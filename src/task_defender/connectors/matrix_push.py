# src/task_defender/connectors/matrix_push.py

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from nio import AsyncClient, JoinError, LoginResponse, RoomSendResponse

from ..channels.push import DEFAULT, DENIED, GRANTED
from ..config import Settings

logger = logging.getLogger(__name__)

SESSION_FILE = "session.json"


class MatrixPushNotifier:
    """
    Push notifications as m.notice messages in one Matrix room.

    Permission model:
    - "default" until request_permission() has logged in and joined the room,
    - "granted" once the room is usable,
    - "denied" when login or join failed (not retried).

    The access token is kept in <matrix_store_path>/session.json, so the password
    is only needed for the first login. clear(tag) redacts the notice that was
    sent for that tag. Notices go to an unencrypted room; no E2EE store is kept.
    """

    def __init__(self, settings: Settings, client: AsyncClient | None = None) -> None:
        self._settings = settings
        self._room_id = settings.matrix_room
        self._session_path = Path(settings.matrix_store_path) / SESSION_FILE
        self._client = client
        self._state = GRANTED if client is not None else DEFAULT
        self._events: dict[str, str] = {}

    def permission(self) -> str:
        return self._state

    # ---- session ----

    def _restore_session(self, client: AsyncClient) -> bool:
        if not self._session_path.exists():
            return False
        try:
            data = json.loads(self._session_path.read_text("utf-8"))
            client.user_id = str(data["user_id"])
            client.device_id = str(data["device_id"])
            client.access_token = str(data["access_token"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable Matrix session %s: %r", self._session_path, e)
            return False
        logger.info("Matrix session restored for %s", client.user_id)
        return True

    def _save_session(self, resp: LoginResponse) -> None:
        self._session_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._session_path.with_suffix(".tmp")
        tmp.write_text(
            json.dumps({"user_id": resp.user_id, "device_id": resp.device_id, "access_token": resp.access_token}),
            "utf-8",
        )
        os.replace(tmp, self._session_path)
        # holds an access token
        os.chmod(self._session_path, 0o600)

    async def _login(self) -> AsyncClient | None:
        s = self._settings
        client = AsyncClient(s.matrix_homeserver, s.matrix_user_id)
        if self._restore_session(client):
            return client

        if not s.matrix_password:
            logger.error("No Matrix session and TASKDEF_MATRIX_PASSWORD is empty; push disabled")
            await client.close()
            return None

        resp = await client.login(password=s.matrix_password, device_name=f"{s.app_name} push")
        if not isinstance(resp, LoginResponse):
            logger.error("Matrix login failed: %r", resp)
            await client.close()
            return None
        try:
            self._save_session(resp)
        except OSError as e:
            # still usable for this run; the next start logs in again
            logger.warning("Failed to save Matrix session to %s: %r", self._session_path, e)
        return client

    # ---- PushNotifier ----

    async def request_permission(self) -> str:
        if self._state != DEFAULT:
            return self._state

        client = await self._login()
        if client is None:
            self._state = DENIED
            return self._state

        try:
            resp = await client.join(self._room_id)
            if isinstance(resp, JoinError):
                raise RuntimeError(resp.message)
        except Exception:
            logger.exception("Matrix join failed for room %s", self._room_id)
            await client.close()
            self._state = DENIED
            return self._state

        self._client = client
        self._state = GRANTED
        logger.info("Matrix push ready (room=%s)", self._room_id)
        return self._state

    async def notify(self, title: str, body: str, tag: str) -> None:
        if self._client is None:
            return
        resp = await self._client.room_send(
            room_id=self._room_id,
            message_type="m.room.message",
            content={"msgtype": "m.notice", "body": f"{title}\n{body}"},
        )
        if isinstance(resp, RoomSendResponse):
            self._events[tag] = resp.event_id
        else:
            logger.warning("Matrix notify failed tag=%s: %r", tag, resp)

    async def clear(self, tag: str) -> None:
        event_id = self._events.pop(tag, None)
        if event_id is None or self._client is None:
            return
        await self._client.room_redact(self._room_id, event_id, reason="reminder answered")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
