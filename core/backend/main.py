"""
FastAPI Server
REST endpoint for file transcription.
WebSocket endpoint for live transcription sessions.
"""

import base64
import binascii
import json
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, Security, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

from config import settings
from models.session import SessionRegistry
from services.audio_processor import AudioProcessor
from services.errors import InvalidConfiguration, TranscriptionError
from services.file_transcriber import FileTranscriber, create_file_transcriber
from services.live_session import LiveTranscriber, create_live_transcriber
from services.transcriber_factory import TranscriberFactory

ALLOWED_EXTENSIONS = {".mp3", ".m4a", ".wav", ".ogg", ".webm", ".flac"}

# Security Scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

async def verify_api_key(api_key: str = Security(api_key_header)):
    """Validate API Key if enforcing security."""
    if settings.api_secret:
        if not api_key or api_key != settings.api_secret:
            raise HTTPException(
                status_code=403,
                detail="Could not validate credentials"
            )
    return api_key

file_transcriber: Optional[FileTranscriber] = None
live_transcriber: Optional[LiveTranscriber] = None

# Live session state is owned here, by the transport layer
sessions = SessionRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize resources on startup, cleanup on shutdown."""
    global file_transcriber, live_transcriber

    print(f"🚀 Starting Backend (mode: {settings.get_effective_mode().value})...")
    try:
        transcriber = await TranscriberFactory.create()
        file_transcriber = create_file_transcriber(transcriber)
        live_transcriber = create_live_transcriber(transcriber)
        print("✅ Backend ready!")
    except InvalidConfiguration as e:
        print(f"⚠️ Transcription disabled: {e}")

    yield

    await TranscriberFactory.reset()
    print("👋 Shutting down...")


app = FastAPI(
    title="Live Transcriber API",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(TranscriptionError)
async def transcription_exception_handler(request: Request, exc: TranscriptionError):
    print(f"❌ Transcription error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(exc) or "Transcription failed"},
    )


@app.get("/health")
async def health_check() -> dict:
    return {
        "status": "healthy",
        "service": "Live Transcriber",
        "mode": settings.get_effective_mode().value,
    }


@app.get("/config")
async def get_config() -> dict:
    """
    Reveal public configuration and key status.
    """
    return {
        "mode": settings.get_effective_mode().value,
        "version": app.version,
        "max_file_size_mb": settings.max_file_size_mb,
        "chunk_duration_seconds": settings.chunk_duration_seconds,
        "chunk_overlap_seconds": settings.chunk_overlap_seconds,
        "keys": {
            "openrouter": bool(settings.openrouter_api_key),
            "groq": bool(settings.groq_api_key),
            "openai": bool(settings.openai_api_key),
        }
    }


# ============================================================================
# FILE TRANSCRIPTION API
# ============================================================================

@app.post("/api/transcribe")
async def transcribe_upload(
    audio: UploadFile = File(...),
    language: str = Form("auto"),
    timestamps: str = Form("segments"),
    _auth: str = Security(verify_api_key),
) -> dict:
    """
    Transcribe an uploaded audio file.
    Large files are transcoded or chunked transparently.
    """
    if not audio.filename:
        raise HTTPException(status_code=400, detail="No audio file provided")

    ext = Path(audio.filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
        )

    if file_transcriber is None:
        raise HTTPException(status_code=503, detail="Transcriber not ready")

    with tempfile.NamedTemporaryFile(suffix=ext, delete=False) as temp_file:
        upload_path = temp_file.name

    try:
        with open(upload_path, "wb") as f:
            shutil.copyfileobj(audio.file, f)
        size = Path(upload_path).stat().st_size
        if size > settings.max_upload_mb * 1024 * 1024:
            raise HTTPException(status_code=413, detail=f"File larger than {settings.max_upload_mb}MB")

        print(f"📥 Transcribe request: {audio.filename} ({size} bytes, language={language})")
        result = await file_transcriber.transcribe_file(upload_path, language=language, timestamps=timestamps)
    finally:
        AudioProcessor.cleanup([upload_path])

    return {
        "success": True,
        "text": result.text,
        "vtt": result.vtt,
        "segments": [s.model_dump() for s in result.segments],
        "meta": {
            **result.meta.model_dump(),
            "filename": audio.filename,
            "originalSize": size,
        },
    }


# ============================================================================
# LIVE TRANSCRIPTION
# ============================================================================

@app.websocket("/ws")
async def websocket_live(websocket: WebSocket) -> None:
    """
    Live transcription, one session per connection.
    Expects JSON: {"type": "start", "sessionId": "...", "language": "auto"},
    {"type": "audio", "chunk": "<base64 pcm_s16le 16kHz mono>"}, {"type": "stop"}
    """
    await websocket.accept()
    session_id: Optional[str] = None
    print("🔌 Client connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError as e:
                await websocket.send_json({"type": "error", "error": f"Invalid message format: {e}"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "error": "Message must be a JSON object"})
                continue

            if live_transcriber is None:
                await websocket.send_json({"type": "error", "error": "Transcriber not ready"})
                continue

            try:
                session_id = await _handle_live_message(websocket, message, session_id)
            except TranscriptionError as e:
                await websocket.send_json({"type": "error", "error": str(e)})

    except WebSocketDisconnect:
        print("🔌 Client disconnected")
    except Exception as e:
        print(f"❌ Live connection error: {e}")
        try:
            await websocket.close(code=1011, reason=str(e)[:120])
        except RuntimeError:
            pass
    finally:
        if session_id is not None:
            sessions.remove(session_id)


async def _handle_live_message(websocket: WebSocket, message: dict[str, Any], session_id: Optional[str]) -> Optional[str]:
    """Dispatch one client message; returns the connection's current session id."""
    msg_type = message.get("type")

    if msg_type == "start":
        if session_id is not None:
            await websocket.send_json({"type": "error", "error": "Session already started"})
            return session_id
        new_id = message.get("sessionId")
        if not new_id:
            await websocket.send_json({"type": "error", "error": "sessionId is required"})
            return session_id
        if not isinstance(new_id, str):
            await websocket.send_json({"type": "error", "error": "sessionId must be a string"})
            return session_id
        language = message.get("language") or "auto"
        if not isinstance(language, str):
            await websocket.send_json({"type": "error", "error": "language must be a string"})
            return session_id
        live_transcriber.start(sessions, new_id, language)
        await websocket.send_json({"type": "started", "sessionId": new_id, "language": language})
        return new_id

    if msg_type == "audio":
        if session_id is None:
            await websocket.send_json({"type": "error", "error": "Session not started"})
            return session_id
        try:
            frame = base64.b64decode(message.get("chunk", ""), validate=True)
        except (binascii.Error, TypeError):
            await websocket.send_json({"type": "error", "error": "chunk must be base64"})
            return session_id
        if not frame:
            await websocket.send_json({"type": "error", "error": "chunk is required"})
            return session_id

        for event in await live_transcriber.ingest(sessions, session_id, frame):
            await websocket.send_json(event.to_message())
        return session_id

    if msg_type == "stop":
        if session_id is None:
            await websocket.send_json({"type": "error", "error": "Session not started"})
            return session_id
        result = await live_transcriber.finalize(sessions, session_id)
        await websocket.send_json({
            "type": "stopped",
            "sessionId": session_id,
            "finalTranscript": result.text,
            "vtt": result.vtt,
        })
        return None

    await websocket.send_json({"type": "error", "error": "Unknown message type"})
    return session_id


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=True, log_level="info")
