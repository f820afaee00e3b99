"""Tests for the meeting lifecycle: start, transcript, stop, summary."""

from __future__ import annotations

from datetime import timedelta

import pytest

from meetnotes.errors import InvalidArgument, NotFound
from meetnotes.models import DEFAULT_MEETING_TITLE, utcnow
from meetnotes.schemas import SummaryData
from meetnotes.services.meeting import (
    FAILED_SUMMARY,
    PLACEHOLDER_SUMMARY,
    MeetingOrchestrator,
    count_words,
    parse_due_date,
)
from meetnotes.services.speakers import SpeakerAttribution, UnknownSpeakerAttributor

from conftest import USER_ID, FakeSummarizer


async def test_start_creates_recording_meeting(orchestrator, workspace) -> None:
    meeting = await orchestrator.start(workspace.id, USER_ID, "Weekly Sync")

    assert meeting.id is not None
    assert meeting.status == "recording"
    assert meeting.start_time is not None
    assert meeting.created_by == USER_ID


@pytest.mark.parametrize("workspace_id,title", [(None, "Sync"), (1, ""), (1, "   ")])
async def test_start_requires_workspace_and_title(orchestrator, workspace_id, title) -> None:
    with pytest.raises(InvalidArgument):
        await orchestrator.start(workspace_id, USER_ID, title)


async def test_start_unknown_workspace(orchestrator) -> None:
    with pytest.raises(NotFound):
        await orchestrator.start(999, USER_ID, "Sync")


async def test_create_scheduled_meeting(orchestrator, workspace) -> None:
    meeting = await orchestrator.create_scheduled(workspace.id, USER_ID, "Planning")

    assert meeting.status == "scheduled"
    assert meeting.start_time is None


async def test_stop_unknown_meeting(orchestrator) -> None:
    with pytest.raises(NotFound):
        await orchestrator.stop(12345)


async def test_stop_completes_and_computes_duration(orchestrator, storage, workspace) -> None:
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")
    storage.update_meeting(meeting.id, start_time=utcnow() - timedelta(seconds=90))

    task = await orchestrator.stop(meeting.id)
    await task

    stopped = storage.get_meeting(meeting.id)
    assert stopped.status == "completed"
    assert stopped.end_time is not None
    assert 89 <= stopped.duration <= 95


async def test_stop_without_start_time_has_zero_duration(orchestrator, storage, workspace) -> None:
    meeting = await orchestrator.create_scheduled(workspace.id, USER_ID, "Sync")

    await (await orchestrator.stop(meeting.id))

    assert storage.get_meeting(meeting.id).duration == 0


async def test_second_stop_is_noop(orchestrator, storage, workspace, summarizer) -> None:
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")
    await (await orchestrator.stop(meeting.id))
    first = storage.get_meeting(meeting.id)

    assert await orchestrator.stop(meeting.id) is None

    second = storage.get_meeting(meeting.id)
    assert second.duration == first.duration
    assert second.end_time == first.end_time
    assert storage.get_meeting_summary(meeting.id) is not None


async def test_add_segment_updates_word_count(orchestrator, storage, workspace) -> None:
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")

    await orchestrator.add_transcript_segment(meeting.id, "We decided to ship Friday.")
    await orchestrator.add_transcript_segment(meeting.id, "Alice will  write\nthe notes.")

    segments = storage.get_meeting_transcript(meeting.id)
    joined = " ".join(s.text for s in segments)
    assert storage.get_meeting(meeting.id).word_count == count_words(joined) == 10
    assert [s.speaker_name for s in segments] == ["Unknown Speaker", "Unknown Speaker"]


async def test_add_segment_ignores_blank_text(orchestrator, storage, workspace) -> None:
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")

    assert await orchestrator.add_transcript_segment(meeting.id, "   ") is None
    assert storage.get_meeting_transcript(meeting.id) == []


async def test_completed_meeting_rejects_segments(orchestrator, storage, workspace) -> None:
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")
    await (await orchestrator.stop(meeting.id))

    assert await orchestrator.add_transcript_segment(meeting.id, "Late words") is None
    assert storage.get_meeting_transcript(meeting.id) == []


async def test_speaker_attribution_is_applied(storage, summarizer, workspace) -> None:
    class NamedSpeakers:
        def attribute(self, text):
            return SpeakerAttribution("Bob", text.replace("Bob: ", ""))

    orchestrator = MeetingOrchestrator(storage, summarizer, NamedSpeakers(), summary_delay=0)
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")

    segment = await orchestrator.add_transcript_segment(meeting.id, "Bob: hello there")

    assert segment.speaker_name == "Bob"
    assert segment.text == "hello there"
    assert orchestrator.full_transcript(meeting.id) == "Bob: hello there"


async def test_empty_transcript_gets_placeholder_summary(orchestrator, storage, workspace, summarizer) -> None:
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")
    await (await orchestrator.stop(meeting.id))

    summary = storage.get_meeting_summary(meeting.id)
    assert summary.summary == PLACEHOLDER_SUMMARY
    assert summary.key_takeaways == []
    assert summary.decisions == []
    assert storage.get_action_items(meeting.id) == []
    assert summarizer.calls == []


async def test_summary_with_action_items_and_title(orchestrator, storage, workspace, summarizer) -> None:
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")
    await orchestrator.add_transcript_segment(
        meeting.id, "We decided to ship Friday. Alice will write the release notes."
    )
    await (await orchestrator.stop(meeting.id))

    summary = storage.get_meeting_summary(meeting.id)
    assert summary.decisions == ["Ship on Friday"]
    items = storage.get_action_items(meeting.id)
    assert len(items) == 1
    assert "Alice" in items[0].assignee_name
    assert items[0].priority == "high"
    assert items[0].status == "pending"
    # The generated title replaces the one given at start.
    assert storage.get_meeting(meeting.id).title == "Release Planning"
    transcript, title = summarizer.calls[0]
    assert transcript.startswith("Unknown Speaker: We decided")
    assert title == "Sync"


async def test_default_title_is_not_applied(storage, workspace) -> None:
    data = SummaryData(
        title=DEFAULT_MEETING_TITLE, summary="Short chat.", key_takeaways=[], decisions=[], action_items=[]
    )
    orchestrator = MeetingOrchestrator(
        storage, FakeSummarizer(data), UnknownSpeakerAttributor(), summary_delay=0
    )
    meeting = await orchestrator.start(workspace.id, USER_ID, "Original Title")
    await orchestrator.add_transcript_segment(meeting.id, "hello everyone")
    await (await orchestrator.stop(meeting.id))

    assert storage.get_meeting(meeting.id).title == "Original Title"


async def test_summarizer_failure_gives_degenerate_summary(storage, workspace, upstream_error) -> None:
    orchestrator = MeetingOrchestrator(
        storage, FakeSummarizer(error=upstream_error), UnknownSpeakerAttributor(), summary_delay=0
    )
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")
    await orchestrator.add_transcript_segment(meeting.id, "some words were spoken")
    await (await orchestrator.stop(meeting.id))

    summary = storage.get_meeting_summary(meeting.id)
    assert summary.summary == FAILED_SUMMARY
    assert storage.get_action_items(meeting.id) == []
    assert storage.get_meeting(meeting.id).title == "Sync"


async def test_generate_summary_requires_completed(orchestrator, workspace) -> None:
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")

    with pytest.raises(InvalidArgument):
        await orchestrator.generate_summary(meeting.id)


async def test_generate_summary_is_created_once(orchestrator, storage, workspace, summarizer) -> None:
    meeting = await orchestrator.start(workspace.id, USER_ID, "Sync")
    await orchestrator.add_transcript_segment(meeting.id, "We decided to ship Friday.")
    await (await orchestrator.stop(meeting.id))

    again = await orchestrator.generate_summary(meeting.id)

    assert again.id == storage.get_meeting_summary(meeting.id).id
    assert len(summarizer.calls) == 1
    assert len(storage.get_action_items(meeting.id)) == 1


def test_parse_due_date() -> None:
    assert parse_due_date("2024-05-17").day == 17
    assert parse_due_date("2024-05-17T10:00:00Z").month == 5
    assert parse_due_date("next friday") is None
    assert parse_due_date(None) is None
