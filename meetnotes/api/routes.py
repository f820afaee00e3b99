import logging

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from meetnotes.api.deps import (
    get_answerer,
    get_assembler,
    get_current_user,
    get_orchestrator,
    get_recorder,
    get_storage,
)
from meetnotes.errors import InvalidArgument, NotFound
from meetnotes.schemas import (
    ActionItemCreate,
    ActionItemUpdate,
    ChatRequest,
    ChatResponse,
    MeetingCreate,
    StopResponse,
    TagCreate,
    WorkspaceCreate,
)
from meetnotes.services.chat import ChatContextAssembler, OllamaQueryAnswerer
from meetnotes.services.meeting import MeetingOrchestrator
from meetnotes.services.recording import RecordingSessionManager
from meetnotes.storage import Storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", dependencies=[Depends(get_current_user)])


def _require_meeting(storage: Storage, meeting_id: int):
    meeting = storage.get_meeting(meeting_id)
    if not meeting:
        raise NotFound("Meeting not found")
    return meeting


def _require_workspace(storage: Storage, workspace_id: int):
    workspace = storage.get_workspace(workspace_id)
    if not workspace:
        raise NotFound("Workspace not found")
    return workspace


# Workspaces

@router.post("/workspaces")
async def create_workspace(
    body: WorkspaceCreate,
    user_id: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return storage.create_workspace(body.name, user_id).to_dict()


@router.get("/workspaces")
async def get_workspaces(
    user_id: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return [w.to_dict() for w in storage.get_user_workspaces(user_id)]


@router.get("/workspaces/{workspace_id}")
async def get_workspace(workspace_id: int, storage: Storage = Depends(get_storage)):
    return _require_workspace(storage, workspace_id).to_dict()


@router.get("/workspaces/{workspace_id}/stats")
async def get_workspace_stats(workspace_id: int, storage: Storage = Depends(get_storage)):
    _require_workspace(storage, workspace_id)
    return storage.get_workspace_stats(workspace_id)


@router.get("/workspaces/{workspace_id}/meetings")
async def get_workspace_meetings(
    workspace_id: int,
    limit: int = Query(default=10, ge=1),
    storage: Storage = Depends(get_storage),
):
    _require_workspace(storage, workspace_id)
    return [m.to_dict() for m in storage.get_workspace_meetings(workspace_id, limit)]


@router.get("/workspaces/{workspace_id}/action-items")
async def get_workspace_action_items(workspace_id: int, storage: Storage = Depends(get_storage)):
    _require_workspace(storage, workspace_id)
    return [item.to_dict() for item in storage.get_workspace_action_items(workspace_id)]


@router.get("/workspaces/{workspace_id}/chat-history")
async def get_chat_history(
    workspace_id: int,
    limit: int = Query(default=50, ge=1),
    storage: Storage = Depends(get_storage),
):
    _require_workspace(storage, workspace_id)
    return [m.to_dict() for m in storage.get_workspace_chat_history(workspace_id, limit)]


# Meetings

@router.post("/meetings")
async def create_meeting(
    body: MeetingCreate,
    user_id: str = Depends(get_current_user),
    orchestrator: MeetingOrchestrator = Depends(get_orchestrator),
):
    meeting = await orchestrator.create_scheduled(body.workspace_id, user_id, body.title)
    return meeting.to_dict()


@router.post("/meetings/start")
async def start_meeting(
    body: MeetingCreate,
    user_id: str = Depends(get_current_user),
    orchestrator: MeetingOrchestrator = Depends(get_orchestrator),
):
    meeting = await orchestrator.start(body.workspace_id, user_id, body.title)
    return meeting.to_dict()


@router.post("/meetings/{meeting_id}/stop", response_model=StopResponse)
async def stop_meeting(
    meeting_id: int,
    recorder: RecordingSessionManager = Depends(get_recorder),
):
    await recorder.request_stop(meeting_id)
    return StopResponse(success=True)


@router.get("/meetings/{meeting_id}")
async def get_meeting(meeting_id: int, storage: Storage = Depends(get_storage)):
    details = storage.get_meeting_with_details(meeting_id)
    if not details:
        raise NotFound("Meeting not found")
    return {
        'meeting': details['meeting'].to_dict(),
        'participants': [p.to_dict() for p in details['participants']],
        'transcriptSegments': [s.to_dict() for s in details['transcriptSegments']],
        'summary': details['summary'].to_dict() if details['summary'] else None,
        'actionItems': [item.to_dict() for item in details['actionItems']],
        'tags': [t.to_dict() for t in details['tags']],
    }


@router.delete("/meetings/{meeting_id}", response_model=StopResponse)
async def delete_meeting(meeting_id: int, storage: Storage = Depends(get_storage)):
    storage.delete_meeting(meeting_id)
    return StopResponse(success=True)


@router.post("/meetings/{meeting_id}/tags")
async def add_meeting_tag(meeting_id: int, body: TagCreate, storage: Storage = Depends(get_storage)):
    _require_meeting(storage, meeting_id)
    return storage.add_meeting_tag(meeting_id, body.tag.strip()).to_dict()


# Action items

@router.post("/action-items")
async def create_action_item(body: ActionItemCreate, storage: Storage = Depends(get_storage)):
    _require_meeting(storage, body.meeting_id)
    item = storage.create_action_item(**body.model_dump())
    return item.to_dict()


@router.patch("/action-items/{action_item_id}")
async def update_action_item(
    action_item_id: int,
    body: ActionItemUpdate,
    storage: Storage = Depends(get_storage),
):
    # Only the due date may be cleared with null.
    updates = {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if value is not None or key == "due_date"
    }
    return storage.update_action_item(action_item_id, **updates).to_dict()


# Chat

@router.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    user_id: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    assembler: ChatContextAssembler = Depends(get_assembler),
    answerer: OllamaQueryAnswerer = Depends(get_answerer),
):
    if not body.workspace_id or not (body.message or "").strip():
        raise InvalidArgument("workspaceId and message are required")
    _require_workspace(storage, body.workspace_id)

    context = assembler.build(body.workspace_id, body.meeting_ids)
    response = await run_in_threadpool(answerer.answer, body.message, context)

    # Saved even when the answer is an apology for an upstream failure.
    chat_message = storage.create_chat_message(
        workspace_id=body.workspace_id,
        user_id=user_id,
        message=body.message,
        response=response,
        meeting_ids=body.meeting_ids or None,
        model=getattr(answerer, "model", "unknown"),
    )
    return ChatResponse(message=chat_message.message, response=chat_message.response, id=chat_message.id)
