from typing import Optional

from fastapi import Header, HTTPException, Request


def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """User id set by the authenticating proxy in front of the API."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


def get_storage(request: Request):
    return request.app.state.storage


def get_orchestrator(request: Request):
    return request.app.state.orchestrator


def get_assembler(request: Request):
    return request.app.state.assembler


def get_answerer(request: Request):
    return request.app.state.answerer


def get_recorder(request: Request):
    return request.app.state.recorder
