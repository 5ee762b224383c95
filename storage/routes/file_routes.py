"""File transfer API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from common.exceptions import ConfigurationError
from common.types import ChunkInfo, ProviderType
from storage.config import parse_provider_type
from storage.manager import StorageManager
from storage.schemas.storage import DownloadRequest, DownloadUrlResponse, ErrorResponse, UploadResponse
from storage.service_locator import get_storage_manager

router = APIRouter(prefix="/storage/files", tags=["Files"])


def _provider_type(value: str) -> ProviderType:
    try:
        return parse_provider_type(value)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _file_response(data: bytes) -> Response:
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Length": str(len(data))}
    )


@router.post(
    "",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={503: {"model": ErrorResponse}}
)
async def upload_file(
    request: Request,
    filename: str = Query(..., min_length=1, description="Original file name"),
    manager: StorageManager = Depends(get_storage_manager)
):
    """
    Upload the raw request body.

    The primary provider is tried first, then each available fallback.

    Returns:
        - file_id: Reference of the first chunk
        - chunks: Every stored chunk, in order
        - used_provider: Provider that accepted the file

    Raises:
        - 503: No provider available or every provider failed
    """
    data = await request.body()
    result = await manager.upload_with_fallback(data, filename)
    return result.to_dict()


@router.get(
    "/{file_id}",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}}
)
async def download_file(
    file_id: str,
    provider: str = Query(ProviderType.TELEGRAM.value, description="Provider that stored the file"),
    bot_id: Optional[str] = Query(None, description="Bot that stored the file"),
    manager: StorageManager = Depends(get_storage_manager)
):
    """
    Download a stored file.

    Chunked files are only reassembled here when this process uploaded them
    recently; otherwise POST the chunk list to `/{file_id}/download`.

    Raises:
        - 400: Unknown provider
        - 404: Unknown bot
        - 409: The file may span several chunks and no chunk list is known
        - 502: A chunk could not be recovered
    """
    data = await manager.download_file(file_id, _provider_type(provider), provider_id=bot_id)
    return _file_response(data)


@router.post(
    "/{file_id}/download",
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}}
)
async def download_file_by_chunks(
    file_id: str,
    request: DownloadRequest,
    provider: str = Query(ProviderType.TELEGRAM.value, description="Provider that stored the file"),
    bot_id: Optional[str] = Query(None, description="Bot that stored the file"),
    manager: StorageManager = Depends(get_storage_manager)
):
    """
    Download a file using the chunk list returned by its upload.

    Raises:
        - 400: Unknown provider
        - 404: Unknown bot
        - 502: A chunk could not be recovered
    """
    chunks = [ChunkInfo.from_dict(chunk.model_dump()) for chunk in request.chunks]
    if bot_id is None and chunks:
        bot_id = chunks[0].provider_id
    data = await manager.download_file(
        file_id,
        _provider_type(provider),
        provider_id=bot_id,
        chunks=chunks or None
    )
    return _file_response(data)


@router.get(
    "/{file_id}/url",
    response_model=DownloadUrlResponse,
    responses={409: {"model": ErrorResponse}}
)
async def get_download_url(
    file_id: str,
    provider: str = Query(ProviderType.TELEGRAM.value, description="Provider that stored the file"),
    bot_id: Optional[str] = Query(None, description="Bot that stored the file"),
    total_chunks: Optional[int] = Query(None, ge=1, description="Chunk count returned by the upload"),
    manager: StorageManager = Depends(get_storage_manager)
):
    """
    Resolve a direct download URL.

    Raises:
        - 400: Unknown provider
        - 409: The file is stored in several chunks, or its chunk count is unknown
    """
    url = await manager.get_download_url(
        file_id,
        _provider_type(provider),
        provider_id=bot_id,
        total_chunks=total_chunks
    )
    return DownloadUrlResponse(url=url)
