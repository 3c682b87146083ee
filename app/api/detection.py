"""
Detection route: /detect

Accepts multipart/form-data with one to ten image parts under `files`
(a lone `file` part, as older clients send, is accepted too).

The caller's rate budget is charged before the form body is read, and
batch-level validation happens before any image is processed.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile

from app.core.dependencies import enforce_rate_limit, get_coordinator
from app.core.errors import InvalidInput
from app.schemas.detection import DetectResponse
from app.services.detection_service import ImageUpload, RequestCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Detection"])


async def _read_uploads(request: Request) -> List[ImageUpload]:
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" not in content_type:
        raise InvalidInput("Use multipart/form-data with one or more 'files' parts")

    form = await request.form()
    parts = form.getlist("files") + form.getlist("file")

    uploads = []
    for index, part in enumerate(parts):
        if not isinstance(part, UploadFile):
            raise InvalidInput("Invalid file upload format")
        uploads.append(
            ImageUpload(
                filename=part.filename or f"image_{index + 1}",
                content_type=part.content_type,
                data=await part.read(),
            )
        )
    return uploads


@router.post("/detect", response_model=DetectResponse, response_model_exclude_none=True)
async def detect(
    request: Request,
    client_ip: str = Depends(enforce_rate_limit),
    coordinator: RequestCoordinator = Depends(get_coordinator),
):
    """Classify each uploaded image with the detector ensemble."""
    uploads = await _read_uploads(request)
    logger.info(f"[ROUTE] /detect from {client_ip}: {len(uploads)} file(s)")

    batch = await coordinator.detect_batch(uploads)
    return DetectResponse.from_batch(batch)
