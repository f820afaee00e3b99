"""Best-effort speaker labels for transcript text.

Attribution sits behind ``attribute(text) -> SpeakerAttribution`` so a real
diarization signal can replace the language-model guess without touching
the recording pipeline.
"""
import logging
from dataclasses import dataclass

from meetnotes.errors import UpstreamUnavailable
from meetnotes.models import UNKNOWN_SPEAKER
from meetnotes.services.ollama import OllamaClient, extract_json_object

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "Extract the speaker name and their spoken text from meeting transcript "
    "segments. If no speaker is identifiable, use 'Unknown Speaker'. Respond "
    'with JSON format: {"speaker": "Speaker Name", "text": "What they said"}'
)


@dataclass
class SpeakerAttribution:
    speaker: str
    text: str


class UnknownSpeakerAttributor:
    def attribute(self, text: str) -> SpeakerAttribution:
        return SpeakerAttribution(UNKNOWN_SPEAKER, text)


class OllamaSpeakerAttributor:
    def __init__(self, client: OllamaClient):
        self.client = client

    def attribute(self, text: str) -> SpeakerAttribution:
        try:
            reply = self.client.generate(
                text, system=SYSTEM_PROMPT, json_format=True, temperature=0.1
            )
            result = extract_json_object(reply)
        except (UpstreamUnavailable, ValueError) as e:
            logger.warning("Speaker extraction failed: %s", e)
            return SpeakerAttribution(UNKNOWN_SPEAKER, text)

        speaker = str(result.get("speaker") or "").strip() or UNKNOWN_SPEAKER
        cleaned = str(result.get("text") or "").strip() or text
        return SpeakerAttribution(speaker, cleaned)
