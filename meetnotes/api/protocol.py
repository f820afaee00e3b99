"""Messages exchanged over the recording socket.

Every message is a JSON object tagged by ``type``. Client messages are
decoded once, at the socket boundary, into one of the classes below;
anything else is rejected with a ProtocolError.
"""
import base64
import binascii
import json
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError


class ProtocolError(ValueError):
    pass


class _Message(BaseModel):
    class Config:
        populate_by_name = True

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# client -> server

class StartMeeting(_Message):
    type: Literal["start-meeting"] = "start-meeting"
    meeting_id: int = Field(alias="meetingId")


class _AudioMessage(_Message):
    audio: str
    meeting_id: int = Field(alias="meetingId")

    def audio_bytes(self) -> bytes:
        data = self.audio.split(",", 1)[1] if "," in self.audio else self.audio
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProtocolError(f"Invalid base64 audio: {e}") from e


class AudioChunk(_AudioMessage):
    type: Literal["audio-chunk"] = "audio-chunk"


class CompleteAudio(_AudioMessage):
    type: Literal["complete-audio"] = "complete-audio"


class StopMeeting(_Message):
    type: Literal["stop-meeting"] = "stop-meeting"


ClientMessage = Annotated[
    Union[StartMeeting, AudioChunk, CompleteAudio, StopMeeting],
    Field(discriminator="type"),
]

_client_adapter = TypeAdapter(ClientMessage)


def decode_client_message(raw) -> Union[StartMeeting, AudioChunk, CompleteAudio, StopMeeting]:
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ProtocolError("Invalid message format") from e
    if not isinstance(raw, dict):
        raise ProtocolError("Invalid message format")
    try:
        return _client_adapter.validate_python(raw)
    except ValidationError as e:
        if "type" not in raw:
            raise ProtocolError("Missing message type") from e
        for error in e.errors():
            if error["type"] == "union_tag_invalid":
                raise ProtocolError(f"Unknown message type: {raw['type']}") from e
        raise ProtocolError(f"Invalid {raw['type']} message") from e


# server -> client

class MeetingStarted(_Message):
    type: Literal["meeting-started"] = "meeting-started"
    meeting_id: int = Field(alias="meetingId")


class TranscriptSegmentMessage(_Message):
    type: Literal["transcript-segment"] = "transcript-segment"
    meeting_id: int = Field(alias="meetingId")
    text: str
    timestamp: datetime


class CompleteTranscript(_Message):
    type: Literal["complete-transcript"] = "complete-transcript"
    meeting_id: int = Field(alias="meetingId")
    text: str
    timestamp: datetime


class TranscriptError(_Message):
    type: Literal["transcript-error"] = "transcript-error"
    meeting_id: int = Field(alias="meetingId")
    error: str


class MeetingStopped(_Message):
    type: Literal["meeting-stopped"] = "meeting-stopped"


class ErrorMessage(_Message):
    type: Literal["error"] = "error"
    message: str
