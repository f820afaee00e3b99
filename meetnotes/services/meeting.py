import asyncio
import logging
import weakref
from datetime import datetime
from typing import Optional

from starlette.concurrency import run_in_threadpool

from meetnotes.errors import InvalidArgument, NotFound, UpstreamUnavailable
from meetnotes.models import (
    DEFAULT_MEETING_TITLE,
    Meeting,
    MeetingSummary,
    TranscriptSegment,
    utcnow,
)
from meetnotes.storage import Storage

logger = logging.getLogger(__name__)

PLACEHOLDER_SUMMARY = "No transcript content was captured for this meeting."
FAILED_SUMMARY = (
    "A summary could not be generated for this meeting. "
    "See the transcript for details."
)
LIVE_CONFIDENCE = 95


def count_words(text: str) -> int:
    return len(text.split())


def parse_due_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).strip()[:10])
    except ValueError:
        logger.debug("Ignoring unparseable due date %r", value)
        return None


class MeetingOrchestrator:
    """Meeting lifecycle: start, transcript appends, stop and summarization."""

    def __init__(self, storage: Storage, summarizer, speakers, summary_delay: float = 1.0):
        self.storage = storage
        self.summarizer = summarizer
        self.speakers = speakers
        self.summary_delay = summary_delay
        self._background = set()
        self._summary_locks = weakref.WeakValueDictionary()

    def _validate(self, workspace_id, title):
        if not workspace_id or not (title or "").strip():
            raise InvalidArgument("workspaceId and title are required")
        if not self.storage.get_workspace(workspace_id):
            raise NotFound(f"Workspace {workspace_id} not found")

    async def start(self, workspace_id: int, user_id: str, title: str) -> Meeting:
        self._validate(workspace_id, title)
        meeting = self.storage.create_meeting(
            title=title.strip(),
            workspace_id=workspace_id,
            created_by=user_id,
            status="recording",
            start_time=utcnow(),
        )
        logger.info("Started meeting %s in workspace %s", meeting.id, workspace_id)
        return meeting

    async def create_scheduled(self, workspace_id: int, user_id: str, title: str) -> Meeting:
        self._validate(workspace_id, title)
        return self.storage.create_meeting(
            title=title.strip(),
            workspace_id=workspace_id,
            created_by=user_id,
            status="scheduled",
        )

    async def add_transcript_segment(
        self, meeting_id: int, text: str, speaker_name: Optional[str] = None
    ) -> Optional[TranscriptSegment]:
        if not text or not text.strip():
            return None

        meeting = self.storage.get_meeting(meeting_id)
        if not meeting:
            raise NotFound(f"Meeting {meeting_id} not found")
        if meeting.status == "completed":
            logger.warning("Meeting %s is completed; dropping transcript segment", meeting_id)
            return None

        if speaker_name:
            attribution_text = text.strip()
        else:
            attribution = await run_in_threadpool(self.speakers.attribute, text.strip())
            speaker_name, attribution_text = attribution.speaker, attribution.text

        segment = self.storage.add_transcript_segment(
            meeting_id=meeting_id,
            speaker_name=speaker_name,
            text=attribution_text,
            timestamp=utcnow(),
            confidence=LIVE_CONFIDENCE,
        )

        # Recount from the whole transcript; segments are append-only.
        segments = self.storage.get_meeting_transcript(meeting_id)
        word_count = count_words(" ".join(s.text for s in segments))
        self.storage.update_meeting(meeting_id, word_count=word_count)
        return segment

    async def stop(
        self, meeting_id: int, ended_at: Optional[datetime] = None
    ) -> Optional[asyncio.Task]:
        """Complete a meeting and schedule its summary.

        ``ended_at`` is the moment the stop was asked for when completion
        had to wait for a recording channel; it defaults to now.

        Returns the background summary task, or None when the meeting was
        already completed (a repeated stop changes nothing).
        """
        meeting = self.storage.get_meeting(meeting_id)
        if not meeting:
            raise NotFound(f"Meeting {meeting_id} not found")
        if meeting.status == "completed":
            logger.info("Meeting %s already stopped", meeting_id)
            return None

        end_time = ended_at or utcnow()
        duration = 0
        if meeting.start_time:
            duration = max(0, int((end_time - meeting.start_time).total_seconds()))

        self.storage.update_meeting(
            meeting_id, status="completed", end_time=end_time, duration=duration
        )
        logger.info("Stopped meeting %s after %d seconds", meeting_id, duration)

        task = asyncio.create_task(self._summarize_later(meeting_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _summarize_later(self, meeting_id: int):
        if self.summary_delay:
            await asyncio.sleep(self.summary_delay)
        try:
            await self.generate_summary(meeting_id)
        except Exception:
            logger.exception("Error generating meeting summary for %s", meeting_id)

    def full_transcript(self, meeting_id: int) -> str:
        segments = self.storage.get_meeting_transcript(meeting_id)
        return "\n".join(f"{s.speaker_name}: {s.text}" for s in segments)

    async def drain(self):
        """Wait for scheduled summary tasks to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def generate_summary(self, meeting_id: int) -> MeetingSummary:
        lock = self._summary_locks.get(meeting_id)
        if lock is None:
            lock = self._summary_locks[meeting_id] = asyncio.Lock()
        async with lock:
            return await self._generate_summary(meeting_id)

    async def _generate_summary(self, meeting_id: int) -> MeetingSummary:
        meeting = self.storage.get_meeting(meeting_id)
        if not meeting:
            raise NotFound(f"Meeting {meeting_id} not found")
        if meeting.status != "completed":
            raise InvalidArgument(f"Meeting {meeting_id} is not completed")

        existing = self.storage.get_meeting_summary(meeting_id)
        if existing:
            return existing

        transcript = self.full_transcript(meeting_id)
        if not transcript.strip():
            logger.info("No transcript available for meeting %s", meeting_id)
            return self.storage.create_meeting_summary(meeting_id, PLACEHOLDER_SUMMARY, [], [])

        try:
            data = await run_in_threadpool(self.summarizer.summarize, transcript, meeting.title)
        except UpstreamUnavailable as e:
            logger.warning("Summarization failed for meeting %s: %s", meeting_id, e)
            return self.storage.create_meeting_summary(meeting_id, FAILED_SUMMARY, [], [])

        summary = self.storage.create_meeting_summary(
            meeting_id,
            data.summary,
            data.key_takeaways,
            data.decisions,
            action_items=[
                {
                    'task': item.task,
                    'assignee_name': item.assignee,
                    'priority': item.priority,
                    'due_date': parse_due_date(item.due_date),
                }
                for item in data.action_items
            ],
        )

        # The generated title replaces the one given at start.
        title = data.title.strip()
        if title and title != DEFAULT_MEETING_TITLE:
            self.storage.update_meeting(meeting_id, title=title)

        logger.info(
            "Generated summary for meeting %s with %d action items",
            meeting_id,
            len(data.action_items),
        )
        return summary
