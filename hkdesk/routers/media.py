from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from hkdesk.dependencies import get_services
from hkdesk.services.pipeline import SharedServices

router = APIRouter()


@router.get("/media/{media_path:path}")
async def serve_media(media_path: str, expires: int, sig: str, services: SharedServices = Depends(get_services)):
    """Serve locally stored media via signed URLs."""
    store = services.media
    normalized_path = store.normalize_path(media_path)
    if not normalized_path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing media path")
    if not store.verify(normalized_path, expires, sig):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired signature")

    target_path = store.resolve(normalized_path)
    if target_path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Media not found")
    return FileResponse(target_path)
