import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

AUDIO_MODES = ("chunked", "full")
SPEAKER_ATTRIBUTION_MODES = ("llm", "none")

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"


@dataclass
class Settings:
    database_url: str = "sqlite:///./meetings.db"
    whisper_model: str = "base"
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"
    ollama_timeout: float = 120.0
    audio_mode: str = "chunked"
    chunk_batch_size: int = 3
    chunk_flush_interval_ms: int = 10000
    min_audio_bytes: int = 1000
    speaker_attribution: str = "llm"
    summary_delay_seconds: float = 1.0
    chat_context_meetings: int = 5
    log_level: str = "INFO"

    def __post_init__(self):
        if self.audio_mode not in AUDIO_MODES:
            raise ValueError(
                f"AUDIO_MODE must be one of {', '.join(AUDIO_MODES)}, got {self.audio_mode!r}"
            )
        if self.speaker_attribution not in SPEAKER_ATTRIBUTION_MODES:
            raise ValueError(
                "SPEAKER_ATTRIBUTION must be one of "
                f"{', '.join(SPEAKER_ATTRIBUTION_MODES)}, got {self.speaker_attribution!r}"
            )

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            whisper_model=os.getenv("WHISPER_MODEL", cls.whisper_model),
            ollama_url=os.getenv("OLLAMA_URL", cls.ollama_url),
            ollama_model=os.getenv("OLLAMA_MODEL", cls.ollama_model),
            ollama_timeout=float(os.getenv("OLLAMA_TIMEOUT", cls.ollama_timeout)),
            audio_mode=os.getenv("AUDIO_MODE", cls.audio_mode).lower(),
            chunk_batch_size=int(os.getenv("CHUNK_BATCH_SIZE", cls.chunk_batch_size)),
            chunk_flush_interval_ms=int(
                os.getenv("CHUNK_FLUSH_INTERVAL_MS", cls.chunk_flush_interval_ms)
            ),
            min_audio_bytes=int(os.getenv("MIN_AUDIO_BYTES", cls.min_audio_bytes)),
            speaker_attribution=os.getenv(
                "SPEAKER_ATTRIBUTION", cls.speaker_attribution
            ).lower(),
            summary_delay_seconds=float(
                os.getenv("SUMMARY_DELAY_SECONDS", cls.summary_delay_seconds)
            ),
            chat_context_meetings=int(
                os.getenv("CHAT_CONTEXT_MEETINGS", cls.chat_context_meetings)
            ),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )


def configure_logging(level: str = "INFO"):
    """Install a single console handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, "_meetnotes", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler._meetnotes = True
        root.addHandler(handler)
