import json
import logging
import re
from typing import Optional

import requests

from meetnotes.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class OllamaClient:
    """Thin client for the Ollama ``/api/generate`` endpoint."""

    def __init__(self, base_url: str, model: str, timeout: float = 120, session=None):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_format: bool = False,
        temperature: Optional[float] = None,
    ) -> str:
        payload = {"model": self.model, "prompt": prompt, "stream": False}
        if system:
            payload["system"] = system
        if json_format:
            payload["format"] = "json"
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        try:
            response = self.session.post(
                f"{self.base_url}/api/generate", json=payload, timeout=self.timeout
            )
            response.raise_for_status()
            return response.json().get("response", "")
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise UpstreamUnavailable(f"Ollama returned HTTP {status}", status_code=status) from e
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"Ollama request failed: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailable(f"Ollama returned invalid JSON: {e}") from e


def extract_json_object(text: str) -> dict:
    """Parse a JSON object out of a model reply.

    Handles bare JSON, JSON wrapped in markdown code fences, and JSON
    surrounded by prose. Raises ValueError when nothing parses.
    """
    cleaned = text.strip()
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)```", cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()

    try:
        result = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", cleaned)
        if not match:
            raise ValueError("No JSON object found in model reply")
        result = json.loads(match.group())

    if not isinstance(result, dict):
        raise ValueError("Model reply is not a JSON object")
    return result
