import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from meetnotes.api.protocol import (
    AudioChunk,
    CompleteAudio,
    CompleteTranscript,
    ErrorMessage,
    MeetingStarted,
    MeetingStopped,
    ProtocolError,
    StartMeeting,
    StopMeeting,
    TranscriptError,
    TranscriptSegmentMessage,
    decode_client_message,
)
from meetnotes.errors import MeetnotesError
from meetnotes.services.recording import CHUNKED, RecordingSession, RecordingSessionManager

logger = logging.getLogger(__name__)

router = APIRouter()

NOTHING_TRANSCRIBED = "No speech could be transcribed from the recording"


class ConnectionManager:
    def __init__(self):
        self.active_connections: list[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info("Client connected. Total connections: %d", len(self.active_connections))

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        logger.info("Client disconnected. Total connections: %d", len(self.active_connections))

    async def send_message(self, message, websocket: WebSocket):
        await websocket.send_json(message.to_wire())


manager = ConnectionManager()


async def handle_message(message, session: RecordingSession, recorder: RecordingSessionManager, websocket: WebSocket):
    if isinstance(message, StartMeeting):
        try:
            recorder.begin_session(session, message.meeting_id)
        except MeetnotesError as e:
            logger.warning("Rejected start for meeting %s: %s", message.meeting_id, e)
            await manager.send_message(ErrorMessage(message=str(e)), websocket)
            return
        await manager.send_message(MeetingStarted(meeting_id=message.meeting_id), websocket)

    elif isinstance(message, (AudioChunk, CompleteAudio)):
        expected = AudioChunk if recorder.mode == CHUNKED else CompleteAudio
        if not isinstance(message, expected):
            await manager.send_message(
                ErrorMessage(message=f"{message.type} is not accepted in {recorder.mode} mode"),
                websocket,
            )
            return
        if message.meeting_id != session.meeting_id:
            await manager.send_message(
                ErrorMessage(message=f"Meeting {message.meeting_id} is not the active recording"),
                websocket,
            )
            return
        try:
            result = await recorder.ingest_audio(session, message.meeting_id, message.audio_bytes())
        except (MeetnotesError, ProtocolError) as e:
            logger.error("Error processing audio batch: %s", e)
            await manager.send_message(
                TranscriptError(meeting_id=message.meeting_id, error=str(e)), websocket
            )
            return
        if result:
            await manager.send_message(
                TranscriptSegmentMessage(
                    meeting_id=result.meeting_id, text=result.text, timestamp=result.timestamp
                ),
                websocket,
            )

    elif isinstance(message, StopMeeting):
        meeting_id = session.meeting_id
        try:
            end = await recorder.end_session(session)
        except MeetnotesError as e:
            logger.error("Error stopping meeting %s: %s", meeting_id, e)
            await manager.send_message(
                TranscriptError(meeting_id=meeting_id, error=str(e)), websocket
            )
        else:
            transcript = end.transcript if end else None
            if end and recorder.mode == CHUNKED:
                if transcript and transcript.text:
                    await manager.send_message(
                        TranscriptSegmentMessage(
                            meeting_id=end.meeting_id,
                            text=transcript.text,
                            timestamp=transcript.timestamp,
                        ),
                        websocket,
                    )
            elif end:
                if transcript and transcript.text:
                    await manager.send_message(
                        CompleteTranscript(
                            meeting_id=end.meeting_id,
                            text=transcript.text,
                            timestamp=transcript.timestamp,
                        ),
                        websocket,
                    )
                else:
                    await manager.send_message(
                        TranscriptError(meeting_id=end.meeting_id, error=NOTHING_TRANSCRIBED),
                        websocket,
                    )
        await manager.send_message(MeetingStopped(), websocket)

    else:
        raise ProtocolError(f"Unhandled message type: {message.type}")


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await manager.connect(websocket)
    recorder: RecordingSessionManager = websocket.app.state.recorder
    session = RecordingSession()

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = decode_client_message(raw)
            except ProtocolError as e:
                logger.warning("Rejected message: %s", e)
                await manager.send_message(ErrorMessage(message=str(e)), websocket)
                continue
            await handle_message(message, session, recorder, websocket)

    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket error")
    finally:
        manager.disconnect(websocket)
        try:
            await recorder.abandon(session)
        except MeetnotesError as e:
            logger.error("Error closing recording for meeting: %s", e)
