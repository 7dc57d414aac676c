"""Binary frame codec of the streaming TTS websocket protocol.

Every frame starts with a 4-byte header::

    byte 0: protocol version (high nibble) | header size in 4-byte words (low nibble)
    byte 1: message type (high nibble)     | message type flags (low nibble)
    byte 2: serialization (high nibble)    | compression (low nibble)
    byte 3: reserved

Audio-only server frames may carry a signed 32-bit sequence number; a
negative sequence marks the last frame. Error frames carry a 32-bit error
code. All integers are big-endian.
"""

import gzip
import json
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

PROTOCOL_VERSION = 0b0001
HEADER_SIZE = 0b0001  # in 4-byte words


class MsgType(IntEnum):
    FULL_CLIENT_REQUEST = 0b0001
    AUDIO_ONLY_CLIENT = 0b0010
    FULL_SERVER_RESPONSE = 0b1001
    AUDIO_ONLY_SERVER = 0b1011
    FRONT_END_RESULT_SERVER = 0b1100
    ERROR = 0b1111


class MsgFlags(IntEnum):
    NO_SEQUENCE = 0b0000
    POSITIVE_SEQUENCE = 0b0001
    LAST_NO_SEQUENCE = 0b0010
    NEGATIVE_SEQUENCE = 0b0011


class Serialization(IntEnum):
    RAW = 0b0000
    JSON = 0b0001


class Compression(IntEnum):
    NONE = 0b0000
    GZIP = 0b0001


class ProtocolError(ValueError):
    """A frame could not be decoded."""


@dataclass
class Message:
    """One decoded protocol frame."""

    msg_type: MsgType
    flags: int = MsgFlags.NO_SEQUENCE
    serialization: int = Serialization.JSON
    compression: int = Compression.NONE
    sequence: int | None = None
    error_code: int | None = None
    payload: bytes = b""

    @property
    def is_last(self) -> bool:
        """True for the final audio frame of a session."""
        if self.msg_type != MsgType.AUDIO_ONLY_SERVER:
            return False
        if self.flags == MsgFlags.LAST_NO_SEQUENCE:
            return True
        return self.sequence is not None and self.sequence < 0

    def text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")

    def __str__(self) -> str:
        parts = [f"type={self.msg_type.name}", f"flags={self.flags}"]
        if self.sequence is not None:
            parts.append(f"sequence={self.sequence}")
        if self.error_code is not None:
            parts.append(f"error_code={self.error_code}")
        parts.append(f"payload_size={len(self.payload)}")
        return f"Message({', '.join(parts)})"


def _header(msg_type: MsgType, flags: int, serialization: int, compression: int) -> bytes:
    return bytes(
        [
            (PROTOCOL_VERSION << 4) | HEADER_SIZE,
            (int(msg_type) << 4) | (flags & 0x0F),
            (serialization << 4) | (compression & 0x0F),
            0x00,
        ]
    )


def encode_full_client_request(
    request: dict[str, Any],
    compression: Compression = Compression.NONE,
) -> bytes:
    """Encode a JSON request as a full client request frame."""
    payload = json.dumps(request, ensure_ascii=False).encode("utf-8")
    if compression == Compression.GZIP:
        payload = gzip.compress(payload)
    header = _header(
        MsgType.FULL_CLIENT_REQUEST,
        MsgFlags.NO_SEQUENCE,
        Serialization.JSON,
        compression,
    )
    return header + struct.pack(">I", len(payload)) + payload


def decode_message(data: bytes) -> Message:
    """Decode one server frame.

    Raises:
        ProtocolError: On a truncated frame or an unknown message type.
    """
    if len(data) < 4:
        raise ProtocolError(f"Frame too short: {len(data)} bytes")

    header_size = (data[0] & 0x0F) * 4
    raw_type = data[1] >> 4
    flags = data[1] & 0x0F
    serialization = data[2] >> 4
    compression = data[2] & 0x0F

    try:
        msg_type = MsgType(raw_type)
    except ValueError as e:
        raise ProtocolError(f"Unknown message type: {raw_type:#06b}") from e

    offset = header_size
    sequence = None
    error_code = None

    try:
        if msg_type == MsgType.ERROR:
            (error_code,) = struct.unpack_from(">I", data, offset)
            offset += 4
        elif flags in (MsgFlags.POSITIVE_SEQUENCE, MsgFlags.NEGATIVE_SEQUENCE):
            (sequence,) = struct.unpack_from(">i", data, offset)
            offset += 4

        (size,) = struct.unpack_from(">I", data, offset)
        offset += 4
    except struct.error as e:
        raise ProtocolError("Truncated frame header") from e

    payload = data[offset : offset + size]
    if len(payload) != size:
        raise ProtocolError(f"Truncated payload: expected {size} bytes, got {len(payload)}")
    if compression == Compression.GZIP and payload:
        payload = gzip.decompress(payload)

    return Message(
        msg_type=msg_type,
        flags=flags,
        serialization=serialization,
        compression=compression,
        sequence=sequence,
        error_code=error_code,
        payload=payload,
    )


def encode_server_message(message: Message) -> bytes:
    """Encode a server frame; the inverse of ``decode_message``."""
    payload = message.payload
    if message.compression == Compression.GZIP:
        payload = gzip.compress(payload)
    out = _header(message.msg_type, message.flags, message.serialization, message.compression)
    if message.msg_type == MsgType.ERROR:
        out += struct.pack(">I", message.error_code or 0)
    elif message.flags in (MsgFlags.POSITIVE_SEQUENCE, MsgFlags.NEGATIVE_SEQUENCE):
        out += struct.pack(">i", message.sequence or 0)
    return out + struct.pack(">I", len(payload)) + payload
