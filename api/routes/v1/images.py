"""
api/routes/v1/images.py -- Gallery image upload and listing.

Routes:
  POST /api/v1/images   -- multipart upload (field "image"), hosted via the Blob Store
  GET  /api/v1/images   -- the 10 most recent image URLs

Uploads are capped at 5 MB and must declare an image/* content type. The
bytes go straight to the Blob Store; only the returned URL is stored. A Blob
Store failure is terminal for the request (500 upload_failed, rendered by
api/main.py) and nothing is recorded.
"""

from fastapi import APIRouter, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ImageListResponse, ImageUploadResponse
from core.blobstore import ImgbbBlobStore
from media.models import GalleryImage
from media.store import ImageStore

router = APIRouter()

_MAX_UPLOAD_BYTES = 5 * 1024 * 1024  # 5 MB
_RECENT_LIMIT = 10


@router.post("/images", response_model=ImageUploadResponse, status_code=201)
def upload_image(request: Request, image: UploadFile) -> ImageUploadResponse:
    content_type = image.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="invalid_file", message="No image file provided").model_dump(),
        )
    data = image.file.read(_MAX_UPLOAD_BYTES + 1)
    if not data:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="invalid_file", message="No image file provided").model_dump(),
        )
    if len(data) > _MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="file_too_large", message="Image exceeds the 5 MB limit.").model_dump(),
        )

    blob_store: ImgbbBlobStore = request.app.state.blob_store
    image_store: ImageStore = request.app.state.image_store
    url = blob_store.upload(data)
    image_store.add_image(GalleryImage(url=url, content_type=content_type))
    return ImageUploadResponse(message="Image uploaded successfully", image_url=url)


@router.get("/images", response_model=ImageListResponse)
def list_images(request: Request) -> JSONResponse:
    """Newest first, at most 10."""
    image_store: ImageStore = request.app.state.image_store
    resp = JSONResponse(
        content=ImageListResponse(
            message="Images fetched successfully",
            images=image_store.latest_urls(_RECENT_LIMIT),
        ).model_dump()
    )
    resp.headers["Cache-Control"] = "public, max-age=31536000"
    return resp
