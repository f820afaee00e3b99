"""Audio accumulation for live recording sessions.

Two accumulation policies exist and a deployment picks one:

* ``chunked``: buffer incoming chunks and transcribe every few chunks or
  every few seconds, appending each result to the transcript as it arrives.
* ``full``: buffer the whole conversation and transcribe it once when the
  session ends.

Each socket owns a ``RecordingSession`` and passes it into every call. The
manager only indexes live sessions by meeting id, so a stop that arrives
over HTTP can hand completion to the socket still holding the audio.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from meetnotes.errors import InvalidArgument, NotFound
from meetnotes.models import utcnow
from meetnotes.services.meeting import MeetingOrchestrator

logger = logging.getLogger(__name__)

CHUNKED = "chunked"
FULL = "full"


@dataclass
class RecordingSession:
    meeting_id: Optional[int] = None
    chunks: List[bytes] = field(default_factory=list)
    last_flush: float = 0.0
    stop_requested_at: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self.meeting_id is not None

    @property
    def buffered_bytes(self) -> int:
        return sum(len(c) for c in self.chunks)

    def take_buffer(self) -> bytes:
        audio = b"".join(self.chunks)
        self.chunks = []
        return audio


@dataclass
class TranscriptResult:
    meeting_id: int
    text: str
    timestamp: datetime


@dataclass
class SessionEnd:
    meeting_id: int
    transcript: Optional[TranscriptResult] = None
    summary_task: Optional[asyncio.Task] = None


class RecordingSessionManager:
    def __init__(
        self,
        orchestrator: MeetingOrchestrator,
        transcriber,
        mode: str = CHUNKED,
        batch_size: int = 3,
        flush_interval_ms: int = 10000,
        min_audio_bytes: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if mode not in (CHUNKED, FULL):
            raise ValueError(f"Unknown audio mode: {mode!r}")
        self.orchestrator = orchestrator
        self.transcriber = transcriber
        self.mode = mode
        self.batch_size = batch_size
        self.flush_interval = flush_interval_ms / 1000.0
        self.min_audio_bytes = min_audio_bytes
        self.clock = clock
        self._live: Dict[int, RecordingSession] = {}

    def live_session(self, meeting_id: int) -> Optional[RecordingSession]:
        return self._live.get(meeting_id)

    def _release(self, session: RecordingSession):
        if self._live.get(session.meeting_id) is session:
            del self._live[session.meeting_id]

    def begin_session(self, session: RecordingSession, meeting_id: int):
        meeting = self.orchestrator.storage.get_meeting(meeting_id)
        if not meeting:
            raise NotFound(f"Meeting {meeting_id} not found")
        if meeting.status == "completed":
            raise InvalidArgument(f"Meeting {meeting_id} is already completed")

        if session.active:
            logger.warning(
                "Session for meeting %s started while meeting %s was active; "
                "discarding %d buffered bytes",
                meeting_id,
                session.meeting_id,
                session.buffered_bytes,
            )
            self._release(session)
        if meeting_id in self._live:
            logger.warning("Meeting %s was already recording on another connection", meeting_id)

        session.meeting_id = meeting_id
        session.chunks = []
        session.last_flush = self.clock()
        session.stop_requested_at = None
        self._live[meeting_id] = session
        logger.info("Started real-time transcription for meeting %s", meeting_id)

    async def request_stop(self, meeting_id: int) -> Optional[asyncio.Task]:
        """Stop a meeting from outside its recording channel.

        With no live session the meeting completes right away. Otherwise the
        stop time is noted and completion waits until the channel ends its
        session, so audio it has not delivered yet still reaches the
        transcript.
        """
        session = self._live.get(meeting_id)
        if session is None:
            return await self.orchestrator.stop(meeting_id)
        if session.stop_requested_at is None:
            session.stop_requested_at = utcnow()
            logger.info("Stop requested for meeting %s; waiting for its recording to end", meeting_id)
        return None

    async def ingest_audio(
        self, session: RecordingSession, meeting_id: int, audio: bytes
    ) -> Optional[TranscriptResult]:
        """Buffer audio; in chunked mode, transcribe when a batch is ready.

        Returns the transcript of a flushed batch, or None when nothing was
        transcribed (still buffering, too short, or empty result).
        """
        if not session.active:
            logger.warning("Audio for meeting %s received with no active session", meeting_id)
            return None
        if meeting_id != session.meeting_id:
            logger.warning(
                "Audio for meeting %s ignored; active meeting is %s",
                meeting_id,
                session.meeting_id,
            )
            return None

        session.chunks.append(audio)
        logger.debug("Received audio chunk: %d bytes for meeting %s", len(audio), meeting_id)

        if self.mode == FULL:
            return None

        now = self.clock()
        if len(session.chunks) < self.batch_size and now - session.last_flush < self.flush_interval:
            return None

        logger.info(
            "Processing %d accumulated chunks (%d bytes)",
            len(session.chunks),
            session.buffered_bytes,
        )
        session.last_flush = now
        result = await self._transcribe(meeting_id, session.take_buffer())
        return result if result.text else None

    async def end_session(self, session: RecordingSession) -> Optional[SessionEnd]:
        """Flush remaining audio and complete the meeting.

        Returns None when no session was active; a repeated stop is a no-op.
        """
        if not session.active:
            logger.info("Stop received with no active session")
            return None

        meeting_id = session.meeting_id
        ended_at = session.stop_requested_at
        audio = session.take_buffer()
        self._release(session)
        session.meeting_id = None
        session.stop_requested_at = None
        logger.info("Stopped real-time transcription for meeting %s", meeting_id)

        end = SessionEnd(meeting_id)
        try:
            if self.mode == FULL or audio:
                end.transcript = await self._transcribe(meeting_id, audio)
        finally:
            end.summary_task = await self.orchestrator.stop(meeting_id, ended_at=ended_at)
        return end

    async def abandon(self, session: RecordingSession) -> Optional[SessionEnd]:
        """Connection closed. Finishes the meeting if a stop was already asked for."""
        if session.active and session.stop_requested_at is not None:
            logger.info(
                "Connection closed for meeting %s after stop was requested; completing it",
                session.meeting_id,
            )
            return await self.end_session(session)

        if session.active:
            logger.warning(
                "Connection closed during meeting %s; discarding %d buffered bytes",
                session.meeting_id,
                session.buffered_bytes,
            )
            self._release(session)
        session.meeting_id = None
        session.chunks = []
        return None

    async def _transcribe(self, meeting_id: int, audio: bytes) -> TranscriptResult:
        text = ""
        if len(audio) < self.min_audio_bytes:
            logger.info(
                "Dropping %d bytes of audio for meeting %s; too short to contain speech",
                len(audio),
                meeting_id,
            )
        else:
            text = (await run_in_threadpool(self.transcriber.transcribe, audio)).strip()
            if text and await self.orchestrator.add_transcript_segment(meeting_id, text) is None:
                # Only saved text is reported back to the client.
                logger.warning("Transcript for meeting %s was not saved", meeting_id)
                text = ""
        return TranscriptResult(meeting_id, text, utcnow())
