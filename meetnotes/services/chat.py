import logging
from typing import List, Optional

from meetnotes.errors import UpstreamUnavailable
from meetnotes.services.ollama import OllamaClient
from meetnotes.storage import Storage

logger = logging.getLogger(__name__)

TRANSCRIPT_EXCERPT_SEGMENTS = 10

ANSWER_SYSTEM_PROMPT = (
    "You are an AI assistant that helps users query their meeting notes. You have "
    "access to meeting transcripts, summaries, action items, and decisions. Provide "
    "helpful, accurate responses based on the meeting context provided. If you "
    "cannot find the answer in the context, say so clearly."
)

NO_RESPONSE = "I'm sorry, I couldn't generate a response to your query."
QUOTA_EXCEEDED = (
    "I'm unable to process your request because the AI service quota has been "
    "exceeded. Please try again later."
)
AUTH_FAILED = (
    "There's an issue with the AI service authentication. Please verify the "
    "service credentials and permissions."
)
SERVICE_UNAVAILABLE = (
    "The AI service is temporarily unavailable. Please try again in a few moments."
)
GENERIC_FAILURE = (
    "I'm experiencing technical difficulties and cannot process your request "
    "right now. Please try again later."
)


def apology_for(error: UpstreamUnavailable) -> str:
    status = error.status_code
    if status == 429:
        return QUOTA_EXCEEDED
    if status in (401, 403):
        return AUTH_FAILED
    if status is None or status >= 500:
        return SERVICE_UNAVAILABLE
    return GENERIC_FAILURE


class OllamaQueryAnswerer:
    def __init__(self, client: OllamaClient):
        self.client = client

    @property
    def model(self) -> str:
        return self.client.model

    def answer(self, question: str, context: str) -> str:
        """Answer a question about meetings; never raises."""
        prompt = f"Context from meetings:\n{context}\n\nUser question: {question}"
        try:
            reply = self.client.generate(prompt, system=ANSWER_SYSTEM_PROMPT, temperature=0.1)
        except UpstreamUnavailable as e:
            logger.error("Query answering error: %s", e)
            return apology_for(e)
        return reply.strip() or NO_RESPONSE


def format_meeting_block(details: dict) -> str:
    meeting = details['meeting']
    summary = details['summary']
    action_items = details['actionItems']
    segments = details['transcriptSegments']

    lines = [f"\n=== Meeting: {meeting.title} ==="]
    lines.append(f"Date: {meeting.created_at.isoformat() if meeting.created_at else 'unknown'}")

    if summary:
        lines.append(f"\nSummary: {summary.summary}")
        lines.append("\nKey Takeaways:")
        lines.extend(f"- {t}" for t in summary.key_takeaways or [])
        lines.append("\nDecisions:")
        lines.extend(f"- {d}" for d in summary.decisions or [])

    if action_items:
        lines.append("\nAction Items:")
        lines.extend(
            f"- {item.task} (Assigned to: {item.assignee_name}, Priority: {item.priority})"
            for item in action_items
        )

    if segments:
        lines.append("\nKey Discussion Points:")
        lines.extend(
            f"{s.speaker_name}: {s.text}" for s in segments[:TRANSCRIPT_EXCERPT_SEGMENTS]
        )

    return "\n".join(lines) + "\n"


class ChatContextAssembler:
    """Builds the plain-text meeting context handed to the answerer.

    Context grows with the number and length of selected meetings; there is
    no ranking or truncation.
    """

    def __init__(self, storage: Storage, fallback_meetings: int = 5):
        self.storage = storage
        self.fallback_meetings = fallback_meetings

    def select_meeting_ids(self, workspace_id: int, meeting_ids: Optional[List[int]]) -> List[int]:
        if meeting_ids:
            return list(meeting_ids)
        recent = self.storage.get_workspace_meetings(workspace_id, self.fallback_meetings)
        return [m.id for m in recent]

    def build(self, workspace_id: int, meeting_ids: Optional[List[int]] = None) -> str:
        blocks = []
        for meeting_id in self.select_meeting_ids(workspace_id, meeting_ids):
            details = self.storage.get_meeting_with_details(meeting_id)
            if not details:
                logger.debug("Skipping missing meeting %s in chat context", meeting_id)
                continue
            blocks.append(format_meeting_block(details))
        return "".join(blocks)
