"""Signed URL endpoints for the local filesystem backend.

LocalStorageService hands out /storage/signed/{token} URLs; mount the router
returned by create_local_storage_router(backend) to serve them.
"""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from storagekit.infrastructure.storage.local_storage import LocalStorageService
from storagekit.infrastructure.storage.protocol import SignedUrlMethod


def create_local_storage_router(backend: LocalStorageService) -> APIRouter:
    """Build GET/PUT routes resolving signed tokens against backend."""
    router = APIRouter(prefix=LocalStorageService.SIGNED_URL_PATH, tags=["storage"])

    def _resolve(token: str, method: SignedUrlMethod) -> str:
        key = backend.resolve_signed_token(token, method)
        if key is None:
            raise HTTPException(status_code=403, detail="Invalid or expired signed URL")
        return key

    @router.get("/{token}")
    async def download_signed(token: str) -> StreamingResponse:
        """Stream the file behind a GET token."""
        key = _resolve(token, SignedUrlMethod.GET)
        stream = await backend.download(key)
        return StreamingResponse(stream, media_type="application/octet-stream")

    @router.put("/{token}")
    async def upload_signed(token: str, request: Request) -> dict[str, str | None]:
        """Store the request body under the key of a PUT token."""
        key = _resolve(token, SignedUrlMethod.PUT)
        body = await request.body()
        content_type = request.headers.get("content-type") or "application/octet-stream"
        result = await backend.upload(key, body, content_type)
        return {"key": result.key, "etag": result.etag}

    return router
