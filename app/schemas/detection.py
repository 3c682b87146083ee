from pydantic import BaseModel, Field
from typing import Optional, List

from app.services.detection_service import BatchResult, ImageOutcome


class ModelResult(BaseModel):
    model: str                  # detector identifier, e.g. "Organika/sdxl-detector"
    probability: float          # P(synthetic); 0.5 when the detector was unavailable
    weight: float


class ImageResult(BaseModel):
    filename: str
    result: Optional[str] = None            # "AI-generated", "Real", "Needs review"
    confidence: Optional[float] = None
    individual_results: Optional[List[ModelResult]] = None
    processing_time: Optional[float] = None
    search_indication: Optional[str] = None  # only set when corroboration ran
    error: Optional[str] = None              # only set for a failed image
    status_code: Optional[int] = None

    @classmethod
    def from_outcome(cls, outcome: ImageOutcome) -> "ImageResult":
        if outcome.verdict is None:
            return cls(filename=outcome.filename, error=outcome.error, status_code=500)

        verdict = outcome.verdict
        return cls(
            filename=outcome.filename,
            result=verdict.label,
            confidence=round(verdict.confidence, 4),
            individual_results=[
                ModelResult(model=s.model, probability=round(s.probability, 4), weight=s.weight)
                for s in verdict.scores
            ],
            processing_time=round(verdict.processing_time, 3),
            search_indication=verdict.search_indication,
        )


class DetectResponse(BaseModel):
    results: List[ImageResult]
    total_processing_time: float = Field(description="Wall-clock seconds for the whole batch")

    @classmethod
    def from_batch(cls, batch: BatchResult) -> "DetectResponse":
        return cls(
            results=[ImageResult.from_outcome(o) for o in batch.outcomes],
            total_processing_time=round(batch.total_processing_time, 3),
        )


class FeedbackResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    time: str
