"""
WebSocketManager: realtime transport between one browser connection and the SessionManager.

One WebSocket = one connection identity; any number of start/stop sessions may run over it,
one at a time. Frames are handled strictly in arrival order:

- binary frame                       -> audio_chunk
- {"event": "start_transcription"}   -> on_start (awaited: chunks sent right after start
                                        are not dropped)
- {"event": "stop_transcription"}    -> request_stop (state flips immediately; summarizing
                                        runs in the background so disconnect can cancel it)
- websocket.disconnect               -> on_disconnect (nothing is sent back)

Unknown events and malformed JSON are logged and ignored; the connection stays usable.
"""
from __future__ import annotations

import logging

from fastapi import WebSocket

from minutagen.session_manager import SessionManager
from minutagen.session_store import generate_connection_id
from minutagen.transcript.messages import (
    AUDIO_CHUNK,
    CONNECTED,
    START_TRANSCRIPTION,
    STOP_TRANSCRIPTION,
    ServerMessage,
    message_to_json,
    parse_client_event,
)

logger = logging.getLogger(__name__)


class WebSocketManager:
    def __init__(self, websocket: WebSocket, sessions: SessionManager) -> None:
        self._ws = websocket
        self._sessions = sessions
        self._connection_id = generate_connection_id()
        self._closed = False

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def _send_message(self, msg: ServerMessage) -> None:
        if self._closed:
            return
        try:
            await self._ws.send_text(message_to_json(msg))
        except Exception as e:
            logger.debug("[%s] Send failed (%s); marking connection closed", self._connection_id, e)
            self._closed = True

    async def _handle_text(self, raw: str) -> None:
        cid = self._connection_id
        event = parse_client_event(raw)
        if event == START_TRANSCRIPTION:
            await self._sessions.on_start(cid)
        elif event == STOP_TRANSCRIPTION:
            self._sessions.request_stop(cid)
        elif event == AUDIO_CHUNK:
            logger.debug("[%s] audio_chunk sent as text frame; audio must be binary", cid)
        else:
            logger.warning("[%s] Ignoring client message: %.200s", cid, raw)

    async def run(self) -> None:
        """Main loop: receive frames and dispatch until the client goes away."""
        cid = self._connection_id
        self._sessions.attach(cid, self._send_message)
        logger.info("[%s] WebSocket client connected", cid)
        await self._send_message(ServerMessage(event=CONNECTED, payload={"connection_id": cid}))
        try:
            while not self._closed:
                msg = await self._ws.receive()
                if msg.get("type") == "websocket.disconnect":
                    break
                data = msg.get("bytes")
                if data is not None:
                    self._sessions.on_audio_chunk(cid, data)
                    continue
                text = msg.get("text")
                if text is not None:
                    await self._handle_text(text)
        finally:
            self._closed = True
            logger.info("[%s] WebSocket client disconnected", cid)
            await self._sessions.on_disconnect(cid)
