"""Tests for chat context assembly and the query-answering gateway."""

from __future__ import annotations

from meetnotes.errors import UpstreamUnavailable
from meetnotes.services.chat import (
    AUTH_FAILED,
    GENERIC_FAILURE,
    NO_RESPONSE,
    QUOTA_EXCEEDED,
    SERVICE_UNAVAILABLE,
    OllamaQueryAnswerer,
    apology_for,
)

from conftest import USER_ID


def _meeting(storage, workspace, title):
    return storage.create_meeting(
        title=title, workspace_id=workspace.id, created_by=USER_ID, status="completed"
    )


def test_fallback_to_five_most_recent(storage, workspace, assembler) -> None:
    meetings = [_meeting(storage, workspace, f"Meeting {i}") for i in range(7)]

    for ids in (None, []):
        selected = assembler.select_meeting_ids(workspace.id, ids)
        assert selected == [m.id for m in reversed(meetings)][:5]

    context = assembler.build(workspace.id, [])
    assert "Meeting 6" in context
    assert "Meeting 2" in context
    assert "Meeting 1 ===" not in context


def test_explicit_ids_keep_given_order(storage, workspace, assembler) -> None:
    first = _meeting(storage, workspace, "Budget Review")
    second = _meeting(storage, workspace, "Design Sync")
    _meeting(storage, workspace, "Hiring Plan")

    context = assembler.build(workspace.id, [second.id, first.id, 9999])

    assert context.index("Design Sync") < context.index("Budget Review")
    assert "Hiring Plan" not in context


def test_meeting_block_contents(storage, workspace, assembler) -> None:
    meeting = _meeting(storage, workspace, "Release Planning")
    storage.create_meeting_summary(
        meeting.id,
        "The team agreed to ship on Friday.",
        ["Release is on track"],
        ["Ship on Friday"],
        action_items=[{"task": "Write release notes", "assignee_name": "Alice", "priority": "high"}],
    )
    for i in range(12):
        storage.add_transcript_segment(meeting_id=meeting.id, speaker_name="Bob", text=f"point {i}")

    context = assembler.build(workspace.id, [meeting.id])

    assert "=== Meeting: Release Planning ===" in context
    assert "Date: " in context
    assert "Summary: The team agreed to ship on Friday." in context
    assert "Key Takeaways:\n- Release is on track" in context
    assert "Decisions:\n- Ship on Friday" in context
    assert "- Write release notes (Assigned to: Alice, Priority: high)" in context
    assert "Key Discussion Points:" in context
    assert "Bob: point 9" in context
    assert "Bob: point 10" not in context


def test_meeting_without_summary_has_no_summary_section(storage, workspace, assembler) -> None:
    meeting = _meeting(storage, workspace, "Quiet Meeting")

    context = assembler.build(workspace.id, [meeting.id])

    assert "Quiet Meeting" in context
    assert "Summary:" not in context
    assert "Action Items:" not in context


def test_empty_workspace_gives_empty_context(storage, workspace, assembler) -> None:
    assert assembler.build(workspace.id) == ""


class _Client:
    model = "llama3"

    def __init__(self, reply="", error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def generate(self, prompt, system=None, json_format=False, temperature=None):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.reply


def test_answer_includes_context_and_question() -> None:
    client = _Client(reply="  Alice owns the release notes.  ")
    answerer = OllamaQueryAnswerer(client)

    answer = answerer.answer("Who writes the notes?", "=== Meeting: Release ===")

    assert answer == "Alice owns the release notes."
    assert "=== Meeting: Release ===" in client.prompts[0]
    assert "User question: Who writes the notes?" in client.prompts[0]
    assert answerer.model == "llama3"


def test_empty_answer_gets_default_reply() -> None:
    assert OllamaQueryAnswerer(_Client(reply="")).answer("q", "") == NO_RESPONSE


def test_upstream_failure_becomes_apology() -> None:
    error = UpstreamUnavailable("quota", status_code=429)

    assert OllamaQueryAnswerer(_Client(error=error)).answer("q", "") == QUOTA_EXCEEDED


def test_apology_for_status() -> None:
    assert apology_for(UpstreamUnavailable("x", 401)) == AUTH_FAILED
    assert apology_for(UpstreamUnavailable("x", 503)) == SERVICE_UNAVAILABLE
    assert apology_for(UpstreamUnavailable("x")) == SERVICE_UNAVAILABLE
    assert apology_for(UpstreamUnavailable("x", 400)) == GENERIC_FAILURE
