"""Speech synthesis provider adapters."""

from media_engine.adapters.voiceover.base import (
    VoiceoverProvider,
    VoiceoverRequest,
    VoiceoverResult,
)
from media_engine.adapters.voiceover.speech import GatewaySpeechProvider
from media_engine.adapters.voiceover.streaming import StreamingSpeechProvider

__all__ = [
    "GatewaySpeechProvider",
    "StreamingSpeechProvider",
    "VoiceoverProvider",
    "VoiceoverRequest",
    "VoiceoverResult",
]
