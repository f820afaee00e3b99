from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from meetnotes.database import Base

UNKNOWN_SPEAKER = "Unknown Speaker"
DEFAULT_MEETING_TITLE = "Untitled Meeting"

MEETING_STATUSES = ("scheduled", "recording", "completed")
ACTION_ITEM_PRIORITIES = ("high", "medium", "low")
ACTION_ITEM_STATUSES = ("pending", "completed")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class Workspace(Base):
    __tablename__ = "workspaces"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    owner_id = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'ownerId': self.owner_id,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class WorkspaceMember(Base):
    __tablename__ = "workspace_members"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), nullable=False, index=True)
    user_id = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default="member")
    joined_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'workspaceId': self.workspace_id,
            'userId': self.user_id,
            'role': self.role,
            'joinedAt': _iso(self.joined_at),
        }


class Meeting(Base):
    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(300), nullable=False)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), nullable=False, index=True)
    created_by = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default="scheduled")
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True)
    participant_count = Column(Integer, default=0)
    word_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'workspaceId': self.workspace_id,
            'createdBy': self.created_by,
            'status': self.status,
            'startTime': _iso(self.start_time),
            'endTime': _iso(self.end_time),
            'duration': self.duration,
            'participantCount': self.participant_count,
            'wordCount': self.word_count,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class MeetingParticipant(Base):
    __tablename__ = "meeting_participants"

    id = Column(Integer, primary_key=True, index=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id"), nullable=False, index=True)
    user_id = Column(String(100), nullable=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200), nullable=True)
    role = Column(String(50), nullable=True)
    joined_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'meetingId': self.meeting_id,
            'userId': self.user_id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'joinedAt': _iso(self.joined_at),
        }


class TranscriptSegment(Base):
    __tablename__ = "transcript_segments"

    id = Column(Integer, primary_key=True, index=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id"), nullable=False, index=True)
    speaker_name = Column(String(200), nullable=False, default=UNKNOWN_SPEAKER)
    text = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    confidence = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'meetingId': self.meeting_id,
            'speakerName': self.speaker_name,
            'text': self.text,
            'timestamp': _iso(self.timestamp),
            'confidence': self.confidence,
            'createdAt': _iso(self.created_at),
        }


class MeetingSummary(Base):
    __tablename__ = "meeting_summaries"

    id = Column(Integer, primary_key=True, index=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id"), nullable=False, unique=True)
    summary = Column(Text, nullable=False)
    key_takeaways = Column(JSON, nullable=False, default=list)
    decisions = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'meetingId': self.meeting_id,
            'summary': self.summary,
            'keyTakeaways': list(self.key_takeaways or []),
            'decisions': list(self.decisions or []),
            'createdAt': _iso(self.created_at),
        }


class ActionItem(Base):
    __tablename__ = "action_items"

    id = Column(Integer, primary_key=True, index=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id"), nullable=False, index=True)
    task = Column(Text, nullable=False)
    assignee_name = Column(String(200), nullable=False)
    due_date = Column(DateTime, nullable=True)
    priority = Column(String(10), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'meetingId': self.meeting_id,
            'task': self.task,
            'assigneeName': self.assignee_name,
            'dueDate': _iso(self.due_date),
            'priority': self.priority,
            'status': self.status,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class MeetingTag(Base):
    __tablename__ = "meeting_tags"

    id = Column(Integer, primary_key=True, index=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id"), nullable=False, index=True)
    tag = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'meetingId': self.meeting_id,
            'tag': self.tag,
            'createdAt': _iso(self.created_at),
        }


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), nullable=False, index=True)
    user_id = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    meeting_ids = Column(JSON, nullable=True)
    model = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'workspaceId': self.workspace_id,
            'userId': self.user_id,
            'message': self.message,
            'response': self.response,
            'meetingIds': self.meeting_ids,
            'model': self.model,
            'createdAt': _iso(self.created_at),
        }
