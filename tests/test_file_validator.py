"""Pure unit tests for app/core/file_validator.py."""

import pytest

from app.config import settings
from app.core.errors import InvalidInput
from app.core.file_validator import validate_upload


@pytest.mark.parametrize("content_type", ["image/jpeg", "image/png", "IMAGE/WEBP", "image/gif"])
def test_image_content_types_pass(content_type):
    validate_upload("photo", content_type, 100)  # should not raise


@pytest.mark.parametrize("content_type", [None, "", "text/plain", "application/pdf", "video/mp4"])
def test_non_image_content_types_rejected(content_type):
    with pytest.raises(InvalidInput) as exc:
        validate_upload("upload.bin", content_type, 100)
    assert exc.value.status_code == 400
    assert "upload.bin" in exc.value.message


def test_empty_file_rejected():
    with pytest.raises(InvalidInput):
        validate_upload("photo.jpg", "image/jpeg", 0)


def test_size_limit_is_inclusive():
    validate_upload("photo.jpg", "image/jpeg", settings.max_image_upload_bytes)


def test_oversized_image_rejected():
    with pytest.raises(InvalidInput) as exc:
        validate_upload("photo.jpg", "image/jpeg", settings.max_image_upload_bytes + 1)
    assert "too large" in exc.value.message


@pytest.mark.parametrize("content_type", ["image/jpeg", "Image/PNG", "text/html", "", None, "application/octet-stream"])
def test_validator_agrees_with_normalizer_content_type_rule(content_type):
    from app.detection.normalizer import is_image_content_type

    if is_image_content_type(content_type):
        validate_upload("photo", content_type, 100)
    else:
        with pytest.raises(InvalidInput):
            validate_upload("photo", content_type, 100)
