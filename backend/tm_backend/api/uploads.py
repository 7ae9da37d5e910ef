"""Uploads: stream stored files by key (S3 or local). Legacy avatar/attachment routes kept for old references."""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from tm_backend.core.deps import get_gateway
from tm_backend.services.storage.base import ObjectNotFoundError
from tm_backend.services.storage.keys import ATTACHMENTS, AVATARS
from tm_backend.services.uploads import StorageGateway

router = APIRouter(prefix="/uploads", tags=["uploads"])


async def _stream_file(key: str, request: Request, gateway: StorageGateway) -> StreamingResponse:
    # Picked up by RequestLoggingMiddleware
    request.state.storage_mode = gateway.mode
    request.state.storage_key = key
    try:
        stream = await gateway.get_file_stream(key)
    except ObjectNotFoundError:
        request.state.stream_result = "not_found"
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    request.state.stream_result = "found"
    return StreamingResponse(
        stream.chunks,
        media_type=stream.content_type,
        headers={"Content-Disposition": "inline"},
    )


@router.get("/file/{key:path}")
async def get_file(key: str, request: Request, gateway: StorageGateway = Depends(get_gateway)):
    """Get file from storage (S3 or local) by storage key."""
    return await _stream_file(key, request, gateway)


@router.get("/avatars/{filename}")
async def get_avatar(filename: str, request: Request, gateway: StorageGateway = Depends(get_gateway)):
    """Legacy local-mode avatar route."""
    return await _stream_file(f"{AVATARS}/{filename}", request, gateway)


@router.get("/attachments/{path:path}")
async def get_attachment(path: str, request: Request, gateway: StorageGateway = Depends(get_gateway)):
    """Legacy local-mode attachment route."""
    return await _stream_file(f"{ATTACHMENTS}/{path}", request, gateway)
