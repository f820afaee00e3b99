import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meetnotes.api import routes, websockets
from meetnotes.config import Settings
from meetnotes.database import init_db, make_engine, make_session_factory
from meetnotes.errors import InvalidArgument, NotFound, PersistenceFailure
from meetnotes.services.chat import ChatContextAssembler, OllamaQueryAnswerer
from meetnotes.services.meeting import MeetingOrchestrator
from meetnotes.services.ollama import OllamaClient
from meetnotes.services.recording import RecordingSessionManager
from meetnotes.services.speakers import OllamaSpeakerAttributor, UnknownSpeakerAttributor
from meetnotes.services.summarization import OllamaSummarizer
from meetnotes.services.transcription import WhisperTranscriber
from meetnotes.storage import Storage

logger = logging.getLogger(__name__)


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception):
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


async def _validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def create_app(
    settings: Optional[Settings] = None,
    *,
    transcriber=None,
    summarizer=None,
    answerer=None,
    speakers=None,
) -> FastAPI:
    """Build the application; gateways not passed in are built from settings."""
    settings = settings or Settings.from_env()

    engine = make_engine(settings.database_url)
    init_db(engine)
    storage = Storage(make_session_factory(engine))

    ollama = OllamaClient(settings.ollama_url, settings.ollama_model, settings.ollama_timeout)
    if transcriber is None:
        transcriber = WhisperTranscriber(settings.whisper_model, settings.min_audio_bytes)
    if summarizer is None:
        summarizer = OllamaSummarizer(ollama)
    if answerer is None:
        answerer = OllamaQueryAnswerer(ollama)
    if speakers is None:
        if settings.speaker_attribution == "llm":
            speakers = OllamaSpeakerAttributor(ollama)
        else:
            speakers = UnknownSpeakerAttributor()

    orchestrator = MeetingOrchestrator(
        storage, summarizer, speakers, summary_delay=settings.summary_delay_seconds
    )

    app = FastAPI(
        title="meetnotes",
        description="Meeting recording, transcription, summaries and chat over past meetings",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.storage = storage
    app.state.orchestrator = orchestrator
    app.state.recorder = RecordingSessionManager(
        orchestrator,
        transcriber,
        mode=settings.audio_mode,
        batch_size=settings.chunk_batch_size,
        flush_interval_ms=settings.chunk_flush_interval_ms,
        min_audio_bytes=settings.min_audio_bytes,
    )
    app.state.assembler = ChatContextAssembler(storage, settings.chat_context_meetings)
    app.state.answerer = answerer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(InvalidArgument, _error_handler(400))
    app.add_exception_handler(NotFound, _error_handler(404))
    app.add_exception_handler(PersistenceFailure, _error_handler(500))
    app.add_exception_handler(RequestValidationError, _validation_error)

    app.include_router(routes.router, tags=["meetings"])
    app.include_router(websockets.router, tags=["websockets"])

    @app.on_event("startup")
    async def startup_event():
        logger.info("=" * 60)
        logger.info("meetnotes")
        logger.info("Transcription: Whisper (%s)", settings.whisper_model)
        logger.info("Language model: Ollama %s at %s", settings.ollama_model, settings.ollama_url)
        logger.info("Audio mode: %s", settings.audio_mode)
        logger.info("Database: %s", engine.url.render_as_string(hide_password=True))
        logger.info("=" * 60)

    @app.on_event("shutdown")
    async def shutdown_event():
        await orchestrator.drain()

    return app
