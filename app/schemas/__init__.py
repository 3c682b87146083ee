from app.schemas.detection import (
    DetectResponse,
    FeedbackResponse,
    HealthResponse,
    ImageResult,
    ModelResult,
)

__all__ = [
    "DetectResponse",
    "FeedbackResponse",
    "HealthResponse",
    "ImageResult",
    "ModelResult",
]
