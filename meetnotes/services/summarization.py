import json
import logging

from pydantic import ValidationError

from meetnotes.errors import UpstreamUnavailable
from meetnotes.schemas import SummaryData
from meetnotes.services.ollama import OllamaClient, extract_json_object

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert meeting analyst. Analyze meeting transcripts and extract "
    "structured information including summaries, key takeaways, decisions, and "
    "action items. Always respond with valid JSON."
)

SUMMARY_PROMPT = """Analyze this meeting transcript and provide a structured summary in JSON format.

Meeting title: {title}

Transcript:
{transcript}

Provide a JSON response with exactly these fields:
1. "title": A concise, descriptive title for the meeting based on the main topic discussed
2. "summary": A brief 2-3 sentence summary of the meeting
3. "keyTakeaways": An array of the key insights and takeaways
4. "decisions": An array of decisions made during the meeting (empty if none)
5. "actionItems": An array of objects with "task", "assignee", "priority" (high, medium or low) and "dueDate" (YYYY-MM-DD or null)

IMPORTANT: Return ONLY the raw JSON object. Do not include any markdown formatting, code blocks, or explanatory text before or after the JSON."""


class OllamaSummarizer:
    def __init__(self, client: OllamaClient):
        self.client = client

    def summarize(self, transcript: str, title: str) -> SummaryData:
        """Summarize a transcript. Raises UpstreamUnavailable on any failure."""
        result = self.client.generate(
            SUMMARY_PROMPT.format(title=title, transcript=transcript),
            system=SYSTEM_PROMPT,
            json_format=True,
            temperature=0.3,
        )

        try:
            summary = SummaryData.model_validate(extract_json_object(result))
        except (json.JSONDecodeError, ValueError, ValidationError) as e:
            logger.warning("Unusable summary reply: %s", e)
            logger.debug("Raw response: %s", result)
            raise UpstreamUnavailable(f"Invalid summary structure: {e}") from e

        if not summary.summary.strip():
            raise UpstreamUnavailable("Summary reply has no summary text")
        return summary
