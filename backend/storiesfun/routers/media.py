"""
Media Router - text-to-speech narration and editor image uploads.
"""

from fastapi import APIRouter, File, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from ..core.errors import APIError, UpstreamError, bad_request
from ..core.logging import get_logger
from ..services.ipfs_service import ipfs_service
from ..services.tts_service import tts_service

logger = get_logger(__name__)

tts_router = APIRouter()
ipfs_router = APIRouter()


class TTSRequest(BaseModel):
    text: str = ""


@tts_router.post("")
async def text_to_speech(payload: TTSRequest):
    """Narrate text as MP3 audio."""
    if not payload.text.strip():
        raise bad_request("No text provided")

    try:
        audio = await tts_service.synthesize(payload.text)
    except UpstreamError as e:
        raise APIError(500, "TTS failed", details=e.detail[:1000])

    return Response(content=audio, media_type="audio/mpeg")


@ipfs_router.post("")
async def upload_to_ipfs(file: UploadFile = File(...)):
    """Pin an uploaded file; response follows the editor image-tool format."""
    try:
        content = await file.read()
        url = await ipfs_service.add_file(file.filename, content, file.content_type)
    except Exception as e:
        logger.error("ipfs_upload_failed", filename=file.filename, error=str(e))
        return JSONResponse(
            status_code=500,
            content={"success": 0, "error": "Failed to upload to IPFS"},
        )

    return {"success": 1, "file": {"url": url}}
