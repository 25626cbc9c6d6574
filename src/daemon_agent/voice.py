"""Interfaces of the external voice collaborators: capture, transcription and speech."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

MIN_RECORDING_SECONDS = 0.5
MIN_RECORDING_BYTES = 1000


@dataclass(frozen=True)
class AudioCapture:
    audio: bytes
    duration_seconds: float

    @property
    def too_short(self) -> bool:
        return self.duration_seconds < MIN_RECORDING_SECONDS or len(self.audio) < MIN_RECORDING_BYTES


class VoiceInput(Protocol):
    def start(self) -> None: ...

    async def stop(self) -> AudioCapture: ...

    def cancel(self) -> None: ...


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes) -> str: ...


class SpeechOutput(Protocol):
    async def speak(self, text: str, *, speed: float) -> None: ...

    def stop(self) -> None: ...
