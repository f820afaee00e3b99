from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from meetnotes.models import ACTION_ITEM_PRIORITIES

Priority = Literal["high", "medium", "low"]
ActionItemStatus = Literal["pending", "completed"]


class ActionItemData(BaseModel):
    task: str
    assignee: str = "Unassigned"
    priority: Priority = "medium"
    due_date: Optional[str] = Field(default=None, alias="dueDate")

    class Config:
        populate_by_name = True

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, value):
        value = str(value or "").strip().lower()
        return value if value in ACTION_ITEM_PRIORITIES else "medium"

    @field_validator("assignee", mode="before")
    @classmethod
    def default_assignee(cls, value):
        return str(value).strip() if value and str(value).strip() else "Unassigned"


class SummaryData(BaseModel):
    """Structured summary produced by the language model."""

    title: str = ""
    summary: str
    key_takeaways: List[str] = Field(alias="keyTakeaways")
    decisions: List[str]
    action_items: List[ActionItemData] = Field(alias="actionItems")

    class Config:
        populate_by_name = True

    @field_validator("title", mode="before")
    @classmethod
    def blank_title(cls, value):
        return value or ""


class WorkspaceCreate(BaseModel):
    name: str = Field(min_length=1)


class MeetingCreate(BaseModel):
    workspace_id: Optional[int] = Field(default=None, alias="workspaceId")
    title: Optional[str] = None

    class Config:
        populate_by_name = True


class TagCreate(BaseModel):
    tag: str = Field(min_length=1)


class ActionItemCreate(BaseModel):
    meeting_id: int = Field(alias="meetingId")
    task: str = Field(min_length=1)
    assignee_name: str = Field(alias="assigneeName")
    priority: Priority = "medium"
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")

    class Config:
        populate_by_name = True


class ActionItemUpdate(BaseModel):
    task: Optional[str] = None
    assignee_name: Optional[str] = Field(default=None, alias="assigneeName")
    priority: Optional[Priority] = None
    status: Optional[ActionItemStatus] = None
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")

    class Config:
        populate_by_name = True


class ChatRequest(BaseModel):
    workspace_id: Optional[int] = Field(default=None, alias="workspaceId")
    message: Optional[str] = None
    meeting_ids: Optional[List[int]] = Field(default=None, alias="meetingIds")

    class Config:
        populate_by_name = True


class ChatResponse(BaseModel):
    message: str
    response: str
    id: int


class StopResponse(BaseModel):
    success: bool
