import logging
import os
import tempfile
import threading

import whisper

logger = logging.getLogger(__name__)

EBML_HEADER = b"\x1a\x45\xdf\xa3"


def describe_audio_format(audio: bytes) -> str:
    if audio[:4] == EBML_HEADER or b"webm" in audio or b"OpusHead" in audio:
        return "webm/opus"
    return "unknown"


class WhisperTranscriber:
    """Speech-to-text with a local Whisper model.

    The model is loaded on first use and shared afterwards. Failures never
    propagate: the caller gets an empty transcript and the session goes on.
    """

    def __init__(self, model_name: str = "base", min_audio_bytes: int = 1000, model=None):
        self.model_name = model_name
        self.min_audio_bytes = min_audio_bytes
        self._model = model
        self._lock = threading.Lock()

    @property
    def model(self):
        with self._lock:
            if self._model is None:
                logger.info("Loading Whisper model %r... This may take a moment.", self.model_name)
                self._model = whisper.load_model(self.model_name)
                logger.info("Whisper model loaded")
            return self._model

    def transcribe(self, audio: bytes) -> str:
        if not audio:
            return ""
        if len(audio) < self.min_audio_bytes:
            logger.debug("Audio buffer too small: %d bytes", len(audio))
            return ""

        logger.debug("Transcribing %d bytes (%s)", len(audio), describe_audio_format(audio))
        path = None
        try:
            with tempfile.NamedTemporaryFile(suffix=".webm", delete=False) as f:
                f.write(audio)
                path = f.name
            result = self.model.transcribe(path)
            text = (result.get("text") or "").strip()
        except Exception as e:
            logger.error("Transcription error: %s", e)
            return ""
        finally:
            if path and os.path.exists(path):
                os.remove(path)

        if text:
            logger.info("Transcription successful: %d characters", len(text))
        else:
            logger.info("Whisper returned an empty transcription")
        return text
