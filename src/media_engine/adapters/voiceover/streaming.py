"""Streaming speech synthesis over the binary websocket protocol."""

import asyncio
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from websockets.asyncio.client import connect
from websockets.exceptions import WebSocketException

from media_engine.adapters.voiceover import volcano_protocol as protocol
from media_engine.adapters.voiceover.base import (
    VoiceoverProvider,
    VoiceoverRequest,
    VoiceoverResult,
)
from media_engine.config import settings
from media_engine.logging import get_logger

logger = get_logger(__name__)


class StreamingSpeechProvider(VoiceoverProvider):
    """Collects audio frames from a websocket session until the last frame.

    One session per request: a full client request frame carrying the JSON
    request is sent, then audio-only frames are accumulated until a frame
    with a negative sequence number arrives. Error frames fail the request.
    """

    VOICES = {
        "male": "zh_male_wennuanahu_moon_bigtts",
        "female": "zh_female_shuangkuaisisi_moon_bigtts",
    }
    DEFAULT_VOICE = "zh_female_shuangkuaisisi_moon_bigtts"

    def __init__(
        self,
        app_id: str | None = None,
        token: str | None = None,
        url: str | None = None,
        cluster: str | None = None,
        timeout: float | None = None,
        connector: Callable[..., Any] = connect,
    ) -> None:
        self.app_id = app_id or settings.streaming_tts_app_id
        self.token = token or settings.streaming_tts_token
        self.url = url or settings.streaming_tts_url
        self.cluster = cluster or settings.streaming_tts_cluster
        self.timeout = timeout or settings.generation_timeout
        self._connect = connector

        if not self.app_id or not self.token:
            logger.warning("Streaming TTS credentials not configured")

    @property
    def name(self) -> str:
        return "streaming_tts"

    def build_request(self, text: str, voice: str) -> dict[str, Any]:
        return {
            "app": {"appid": self.app_id, "token": self.token, "cluster": self.cluster},
            "user": {"uid": uuid4().hex},
            "audio": {"voice_type": voice, "encoding": "mp3"},
            "request": {"reqid": uuid4().hex, "text": text, "operation": "submit"},
        }

    async def generate(self, request: VoiceoverRequest) -> VoiceoverResult:
        """Synthesize narration through one websocket session."""
        if not self.app_id or not self.token:
            return VoiceoverResult(
                success=False,
                error_message="Streaming TTS credentials not configured",
            )

        voice = self.resolve_voice(request)
        logger.info("streaming_tts_started", text_length=len(request.text), voice=voice)

        try:
            async with asyncio.timeout(self.timeout):
                audio_data = await self._synthesize(self.build_request(request.text, voice))
        except (protocol.ProtocolError, WebSocketException, OSError, TimeoutError) as e:
            error_msg = f"Streaming TTS failed: {str(e) or type(e).__name__}"
            logger.error("streaming_tts_error", error=error_msg)
            return VoiceoverResult(success=False, error_message=error_msg)

        logger.info("streaming_tts_completed", audio_size=len(audio_data), voice=voice)
        return VoiceoverResult(
            success=True,
            audio_data=audio_data,
            metadata={"provider": self.name, "voice": voice, "text_length": len(request.text)},
        )

    async def _synthesize(self, payload: dict[str, Any]) -> bytes:
        chunks: list[bytes] = []
        async with self._connect(
            self.url,
            additional_headers={"Authorization": f"Bearer;{self.token}"},
            max_size=None,
        ) as ws:
            await ws.send(protocol.encode_full_client_request(payload))

            while True:
                frame = await ws.recv()
                if isinstance(frame, str):
                    frame = frame.encode("utf-8")
                message = protocol.decode_message(frame)
                logger.debug("streaming_tts_frame", frame=str(message))

                if message.msg_type == protocol.MsgType.ERROR:
                    raise protocol.ProtocolError(
                        f"TTS error {message.error_code}: {message.text()}"
                    )
                if message.msg_type == protocol.MsgType.AUDIO_ONLY_SERVER:
                    chunks.append(message.payload)
                    if message.is_last:
                        break
                elif message.msg_type != protocol.MsgType.FRONT_END_RESULT_SERVER:
                    logger.warning("streaming_tts_unexpected_frame", frame=str(message))

        if not chunks:
            raise protocol.ProtocolError("No audio data received")
        return b"".join(chunks)
