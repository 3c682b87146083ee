"""
Value types passed between the detection stages.

All are frozen: a Verdict is never patched in place, corroboration derives a
new one via `with_indication`.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

LABEL_AI = "AI-generated"
LABEL_REAL = "Real"
LABEL_NEEDS_REVIEW = "Needs review"

INDICATION_AI = "Possible AI-generation"
INDICATION_NONE = "No indication"


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes = field(repr=False)
    fingerprint: str
    filename: str = "image"


@dataclass(frozen=True)
class ModelScore:
    model: str
    probability: float
    weight: float


@dataclass(frozen=True)
class Verdict:
    label: str
    confidence: float
    scores: Tuple[ModelScore, ...]
    processing_time: float
    search_indication: Optional[str] = None

    @property
    def needs_review(self) -> bool:
        return self.label == LABEL_NEEDS_REVIEW

    def with_indication(self, indication: Optional[str]) -> "Verdict":
        return replace(self, search_indication=indication)

    def with_processing_time(self, seconds: float) -> "Verdict":
        return replace(self, processing_time=seconds)
