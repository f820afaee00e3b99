import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from meetnotes.errors import NotFound, PersistenceFailure
from meetnotes.models import (
    ActionItem,
    ChatMessage,
    Meeting,
    MeetingParticipant,
    MeetingSummary,
    MeetingTag,
    TranscriptSegment,
    Workspace,
    WorkspaceMember,
    utcnow,
)

logger = logging.getLogger(__name__)


class Storage:
    """CRUD over the meeting schema.

    Each call runs in its own session and transaction, so the same instance
    is safe to share between request handlers, socket handlers and
    background summary tasks. Returned objects are detached but fully loaded.
    Any database error is rolled back and re-raised as PersistenceFailure.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self):
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Database error: %s", e)
            raise PersistenceFailure(str(e)) from e
        finally:
            db.close()

    def _add(self, obj):
        with self._transaction() as db:
            db.add(obj)
            db.flush()
            db.refresh(obj)
        return obj

    # Workspaces

    def create_workspace(self, name: str, owner_id: str) -> Workspace:
        with self._transaction() as db:
            workspace = Workspace(name=name, owner_id=owner_id)
            db.add(workspace)
            db.flush()
            db.add(WorkspaceMember(workspace_id=workspace.id, user_id=owner_id, role="owner"))
            db.refresh(workspace)
        return workspace

    def get_user_workspaces(self, user_id: str) -> List[Workspace]:
        with self._transaction() as db:
            return (
                db.query(Workspace)
                .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
                .filter(WorkspaceMember.user_id == user_id)
                .order_by(Workspace.id)
                .all()
            )

    def get_workspace(self, workspace_id: int) -> Optional[Workspace]:
        with self._transaction() as db:
            return db.get(Workspace, workspace_id)

    def add_workspace_member(self, workspace_id: int, user_id: str, role: str = "member") -> WorkspaceMember:
        return self._add(WorkspaceMember(workspace_id=workspace_id, user_id=user_id, role=role))

    # Meetings

    def create_meeting(self, **fields) -> Meeting:
        return self._add(Meeting(**fields))

    def get_meeting(self, meeting_id: int) -> Optional[Meeting]:
        with self._transaction() as db:
            return db.get(Meeting, meeting_id)

    def get_meeting_with_details(self, meeting_id: int) -> Optional[dict]:
        with self._transaction() as db:
            meeting = db.get(Meeting, meeting_id)
            if not meeting:
                return None
            return {
                'meeting': meeting,
                'participants': db.query(MeetingParticipant)
                .filter(MeetingParticipant.meeting_id == meeting_id)
                .order_by(MeetingParticipant.id)
                .all(),
                'transcriptSegments': self._transcript_query(db, meeting_id).all(),
                'summary': db.query(MeetingSummary)
                .filter(MeetingSummary.meeting_id == meeting_id)
                .first(),
                'actionItems': self._action_items_query(db, meeting_id).all(),
                'tags': db.query(MeetingTag)
                .filter(MeetingTag.meeting_id == meeting_id)
                .order_by(MeetingTag.id)
                .all(),
            }

    def get_workspace_meetings(self, workspace_id: int, limit: int = 10) -> List[Meeting]:
        with self._transaction() as db:
            return (
                db.query(Meeting)
                .filter(Meeting.workspace_id == workspace_id)
                .order_by(Meeting.created_at.desc(), Meeting.id.desc())
                .limit(limit)
                .all()
            )

    def update_meeting(self, meeting_id: int, **updates) -> Meeting:
        with self._transaction() as db:
            meeting = db.get(Meeting, meeting_id)
            if not meeting:
                raise NotFound(f"Meeting {meeting_id} not found")
            for key, value in updates.items():
                setattr(meeting, key, value)
            meeting.updated_at = utcnow()
        return meeting

    def delete_meeting(self, meeting_id: int):
        with self._transaction() as db:
            meeting = db.get(Meeting, meeting_id)
            if not meeting:
                raise NotFound(f"Meeting {meeting_id} not found")
            for model in (TranscriptSegment, MeetingSummary, ActionItem, MeetingTag, MeetingParticipant):
                db.query(model).filter(model.meeting_id == meeting_id).delete()
            db.delete(meeting)

    # Transcript

    @staticmethod
    def _transcript_query(db, meeting_id):
        return (
            db.query(TranscriptSegment)
            .filter(TranscriptSegment.meeting_id == meeting_id)
            .order_by(TranscriptSegment.timestamp, TranscriptSegment.id)
        )

    def add_transcript_segment(self, **fields) -> TranscriptSegment:
        return self._add(TranscriptSegment(**fields))

    def get_meeting_transcript(self, meeting_id: int) -> List[TranscriptSegment]:
        with self._transaction() as db:
            return self._transcript_query(db, meeting_id).all()

    # Summaries

    def create_meeting_summary(
        self,
        meeting_id: int,
        summary: str,
        key_takeaways: List[str],
        decisions: List[str],
        action_items: Iterable[dict] = (),
    ) -> MeetingSummary:
        """Write the summary and its action items in one transaction."""
        with self._transaction() as db:
            record = MeetingSummary(
                meeting_id=meeting_id,
                summary=summary,
                key_takeaways=list(key_takeaways),
                decisions=list(decisions),
            )
            db.add(record)
            for item in action_items:
                db.add(ActionItem(meeting_id=meeting_id, **item))
            db.flush()
            db.refresh(record)
        return record

    def get_meeting_summary(self, meeting_id: int) -> Optional[MeetingSummary]:
        with self._transaction() as db:
            return db.query(MeetingSummary).filter(MeetingSummary.meeting_id == meeting_id).first()

    # Action items

    @staticmethod
    def _action_items_query(db, meeting_id):
        return (
            db.query(ActionItem)
            .filter(ActionItem.meeting_id == meeting_id)
            .order_by(ActionItem.created_at, ActionItem.id)
        )

    def create_action_item(self, **fields) -> ActionItem:
        return self._add(ActionItem(**fields))

    def get_action_items(self, meeting_id: int) -> List[ActionItem]:
        with self._transaction() as db:
            return self._action_items_query(db, meeting_id).all()

    def get_workspace_action_items(self, workspace_id: int) -> List[ActionItem]:
        with self._transaction() as db:
            return (
                db.query(ActionItem)
                .join(Meeting, ActionItem.meeting_id == Meeting.id)
                .filter(Meeting.workspace_id == workspace_id)
                .order_by(ActionItem.created_at.desc(), ActionItem.id.desc())
                .all()
            )

    def update_action_item(self, action_item_id: int, **updates) -> ActionItem:
        with self._transaction() as db:
            item = db.get(ActionItem, action_item_id)
            if not item:
                raise NotFound(f"Action item {action_item_id} not found")
            for key, value in updates.items():
                setattr(item, key, value)
            item.updated_at = utcnow()
        return item

    # Tags

    def add_meeting_tag(self, meeting_id: int, tag: str) -> MeetingTag:
        return self._add(MeetingTag(meeting_id=meeting_id, tag=tag))

    def get_meeting_tags(self, meeting_id: int) -> List[MeetingTag]:
        with self._transaction() as db:
            return (
                db.query(MeetingTag)
                .filter(MeetingTag.meeting_id == meeting_id)
                .order_by(MeetingTag.id)
                .all()
            )

    # Chat

    def create_chat_message(self, **fields) -> ChatMessage:
        return self._add(ChatMessage(**fields))

    def get_workspace_chat_history(self, workspace_id: int, limit: int = 50) -> List[ChatMessage]:
        with self._transaction() as db:
            messages = (
                db.query(ChatMessage)
                .filter(ChatMessage.workspace_id == workspace_id)
                .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
                .limit(limit)
                .all()
            )
        # Oldest first
        messages.reverse()
        return messages

    # Analytics

    def get_workspace_stats(self, workspace_id: int) -> dict:
        one_week_ago = utcnow() - timedelta(days=7)
        with self._transaction() as db:
            weekly_meetings = (
                db.query(func.count(Meeting.id))
                .filter(Meeting.workspace_id == workspace_id, Meeting.created_at >= one_week_ago)
                .scalar()
            )
            items = (
                db.query(ActionItem)
                .join(Meeting, ActionItem.meeting_id == Meeting.id)
                .filter(Meeting.workspace_id == workspace_id)
            )
            total_action_items = items.with_entities(func.count(ActionItem.id)).scalar()
            pending_action_items = (
                items.filter(ActionItem.status == "pending")
                .with_entities(func.count(ActionItem.id))
                .scalar()
            )
            member_count = (
                db.query(func.count(WorkspaceMember.id))
                .filter(WorkspaceMember.workspace_id == workspace_id)
                .scalar()
            )
        return {
            'weeklyMeetings': weekly_meetings or 0,
            'totalActionItems': total_action_items or 0,
            'pendingActionItems': pending_action_items or 0,
            'memberCount': member_count or 0,
        }
