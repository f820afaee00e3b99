"""
Shared fixtures for the meetnotes tests.

Every AI gateway is replaced by an in-process fake; the database is an
in-memory SQLite instance shared by all threads of a test.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from meetnotes.application import create_app
from meetnotes.config import Settings
from meetnotes.database import init_db, make_engine, make_session_factory
from meetnotes.errors import UpstreamUnavailable
from meetnotes.schemas import SummaryData
from meetnotes.services.chat import ChatContextAssembler
from meetnotes.services.meeting import MeetingOrchestrator
from meetnotes.services.recording import CHUNKED, FULL, RecordingSessionManager
from meetnotes.services.speakers import UnknownSpeakerAttributor
from meetnotes.storage import Storage

USER_ID = "user-1"


# ─── Gateway fakes ─────────────────────────────────────────────────────────


class FakeTranscriber:
    """Returns a fixed transcript and records every buffer it receives."""

    def __init__(self, text: str = ""):
        self.text = text
        self.calls: list[bytes] = []

    def transcribe(self, audio: bytes) -> str:
        self.calls.append(audio)
        return self.text


class FakeSummarizer:
    def __init__(self, result: SummaryData | None = None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def summarize(self, transcript: str, title: str) -> SummaryData:
        self.calls.append((transcript, title))
        if self.error:
            raise self.error
        return self.result


class FakeAnswerer:
    model = "fake-model"

    def __init__(self, reply: str = "The team decided to ship Friday."):
        self.reply = reply
        self.calls: list[tuple[str, str]] = []

    def answer(self, question: str, context: str) -> str:
        self.calls.append((question, context))
        return self.reply


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def release_summary() -> SummaryData:
    return SummaryData(
        title="Release Planning",
        summary="The team agreed to ship on Friday.",
        key_takeaways=["Release is on track"],
        decisions=["Ship on Friday"],
        action_items=[
            {"task": "Write the release notes", "assignee": "Alice", "priority": "high"},
        ],
    )


# ─── Storage / services ────────────────────────────────────────────────────


@pytest.fixture()
def storage() -> Storage:
    engine = make_engine("sqlite://")
    init_db(engine)
    return Storage(make_session_factory(engine))


@pytest.fixture()
def workspace(storage: Storage):
    return storage.create_workspace("Product Team", USER_ID)


@pytest.fixture()
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture()
def summarizer() -> FakeSummarizer:
    return FakeSummarizer(release_summary())


@pytest.fixture()
async def orchestrator(storage: Storage, summarizer: FakeSummarizer):
    orchestrator = MeetingOrchestrator(
        storage, summarizer, UnknownSpeakerAttributor(), summary_delay=0
    )
    yield orchestrator
    await orchestrator.drain()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def chunked_recorder(orchestrator, transcriber, clock) -> RecordingSessionManager:
    return RecordingSessionManager(
        orchestrator,
        transcriber,
        mode=CHUNKED,
        batch_size=3,
        flush_interval_ms=10000,
        min_audio_bytes=1000,
        clock=clock,
    )


@pytest.fixture()
def full_recorder(orchestrator, transcriber, clock) -> RecordingSessionManager:
    return RecordingSessionManager(
        orchestrator, transcriber, mode=FULL, min_audio_bytes=1000, clock=clock
    )


@pytest.fixture()
def assembler(storage: Storage) -> ChatContextAssembler:
    return ChatContextAssembler(storage, fallback_meetings=5)


# ─── Application ───────────────────────────────────────────────────────────


def make_settings(**overrides) -> Settings:
    values = dict(
        database_url="sqlite://",
        audio_mode="chunked",
        speaker_attribution="none",
        summary_delay_seconds=0,
        chunk_batch_size=3,
        min_audio_bytes=1000,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def answerer() -> FakeAnswerer:
    return FakeAnswerer()


@pytest.fixture()
def app(transcriber, summarizer, answerer):
    return create_app(
        make_settings(),
        transcriber=transcriber,
        summarizer=summarizer,
        answerer=answerer,
    )


@pytest.fixture()
def client(app):
    with TestClient(app, headers={"X-User-Id": USER_ID}) as c:
        yield c


@pytest.fixture()
def app_workspace(app):
    return app.state.storage.create_workspace("Product Team", USER_ID)


@pytest.fixture()
def upstream_error() -> UpstreamUnavailable:
    return UpstreamUnavailable("Ollama returned HTTP 503", status_code=503)
