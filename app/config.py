"""
Central application configuration.

Every tunable value lives here as a typed, documented field.
Any field can be overridden at runtime via an environment variable of the
same name (case-insensitive), e.g.:

    BATCH_TIMEOUT_SEC=90 uvicorn app.main:app        # slow staging upstreams
    export IMGBB_API_KEYS=key_a,key_b,key_c           # host key rotation order

`DETECTORS` takes a JSON list of detector objects:

    DETECTORS='[{"name": "a/b", "synthetic_label": "artificial", "weight": 1.0}]'

A `.env` file at the project root is loaded automatically.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DetectorSpec(BaseModel):
    """One remote detector contributing a weighted vote. Frozen after load."""

    model_config = ConfigDict(frozen=True)

    name: str
    synthetic_label: str = Field(description="Label the detector uses for 'AI-generated'")
    weight: float = Field(gt=0, description="Ensemble weight (need not sum to 1)")
    endpoint: Optional[str] = Field(
        None, description="Full inference URL; defaults to <hf_inference_base_url>/<name>"
    )


DEFAULT_DETECTORS = [
    DetectorSpec(name="umm-maybe/AI-image-detector", synthetic_label="artificial", weight=0.25),
    DetectorSpec(name="Organika/sdxl-detector", synthetic_label="artificial", weight=0.25),
    DetectorSpec(name="haywoodsloan/ai-image-detector-deploy", synthetic_label="artificial", weight=0.2),
    DetectorSpec(name="Nahrawy/AIorNot", synthetic_label="ai", weight=0.1),
    DetectorSpec(name="dima806/ai_vs_real_image_detection", synthetic_label="fake", weight=0.1),
    DetectorSpec(name="prithivMLmods/Deep-Fake-Detector-Model", synthetic_label="fake", weight=0.1),
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,   # HF_API_TOKEN == hf_api_token
        extra="ignore",         # silently drop unknown env vars
    )

    # ------------------------------------------------------------------ #
    # Detectors                                                           #
    # ------------------------------------------------------------------ #
    hf_api_token: str = Field(
        "", description="Bearer token for the Hugging Face inference API"
    )
    hf_inference_base_url: str = Field(
        "https://api-inference.huggingface.co/models",
        description="Base URL that detector names are appended to",
    )
    detectors: List[DetectorSpec] = Field(
        default_factory=lambda: list(DEFAULT_DETECTORS),
        min_length=1,
        description="Ensemble members, in breakdown order",
    )
    probe_timeout_sec: float = Field(
        5.0, description="Timeout for the liveness probe before inference"
    )
    inference_timeout_sec: float = Field(
        15.0, description="Timeout for a single inference call"
    )
    neutral_score: float = Field(
        0.5, description="Probability assigned to a failed or malformed detector call"
    )

    # ------------------------------------------------------------------ #
    # Verdict policy                                                      #
    # ------------------------------------------------------------------ #
    needs_review_threshold: float = Field(
        0.8, description="Confidence below this → 'Needs review' + corroboration"
    )

    # ------------------------------------------------------------------ #
    # Image normalization                                                 #
    # ------------------------------------------------------------------ #
    normalized_image_size: int = Field(
        224, description="Square edge (px) every image is resized to"
    )
    normalized_jpeg_quality: int = Field(
        95, description="JPEG quality of the canonical re-encode"
    )
    contrast_factor: float = Field(
        1.5, description="ImageEnhance.Contrast factor applied after sharpening"
    )
    pil_max_image_pixels: int = Field(
        40_000_000, description="PIL decompression-bomb guard (pixels)"
    )
    max_image_upload_mb: int = Field(
        20, description="Max MB per uploaded image part"
    )

    # ------------------------------------------------------------------ #
    # Batch limits                                                        #
    # ------------------------------------------------------------------ #
    max_images_per_request: int = Field(
        10, description="Max image parts accepted by one /detect call"
    )
    batch_timeout_sec: float = Field(
        60.0, description="Wall-clock budget for a whole /detect batch"
    )

    # ------------------------------------------------------------------ #
    # Corroboration: image host                                           #
    # ------------------------------------------------------------------ #
    imgbb_upload_url: str = Field(
        "https://api.imgbb.com/1/upload", description="Image host upload endpoint"
    )
    imgbb_api_keys: str = Field(
        "", description="Comma-separated image host keys, tried in order"
    )
    image_host_timeout_sec: float = Field(
        15.0, description="Timeout for one upload attempt"
    )

    # ------------------------------------------------------------------ #
    # Corroboration: reverse image search                                 #
    # ------------------------------------------------------------------ #
    serpapi_search_url: str = Field(
        "https://serpapi.com/search.json", description="Reverse search endpoint"
    )
    serpapi_engine: str = Field(
        "google_reverse_image", description="SerpAPI engine name"
    )
    serpapi_api_keys: str = Field(
        "", description="Comma-separated search keys, tried in order"
    )
    search_timeout_sec: float = Field(
        20.0, description="Timeout for one reverse search attempt"
    )
    search_titles_scanned: int = Field(
        5, description="Inline image results whose titles are keyword-scanned"
    )

    # ------------------------------------------------------------------ #
    # Corroboration cache                                                 #
    # ------------------------------------------------------------------ #
    corroboration_cache_max_size: int = Field(
        1000, description="Max entries in the in-memory corroboration cache"
    )
    corroboration_cache_ttl_sec: int = Field(
        3_600, description="1 h: corroboration cache entry lifetime"
    )
    cleanup_interval_sec: int = Field(
        60, description="How often the periodic cache sweep runs (seconds)"
    )

    # ------------------------------------------------------------------ #
    # Redis (optional shared tier)                                        #
    # ------------------------------------------------------------------ #
    upstash_redis_host: str = Field(
        "", description="Upstash REST URL; empty keeps everything in-process"
    )
    upstash_redis_password: str = Field(
        "", description="Upstash REST token"
    )

    # ------------------------------------------------------------------ #
    # Rate Limiting                                                       #
    # ------------------------------------------------------------------ #
    rate_limit_request_window_sec: int = Field(
        60, description="Sliding window for per-caller request rate (seconds)"
    )
    rate_limit_max_requests: int = Field(
        100, description="Max /detect calls allowed within the rate-limit window"
    )
    rate_limit_memory_limit: int = Field(
        1000, description="Max keys before in-memory rate-limit map is pruned"
    )

    # ------------------------------------------------------------------ #
    # Shared HTTP session                                                 #
    # ------------------------------------------------------------------ #
    http_session_timeout_sec: float = Field(
        30.0, description="Default total timeout of the shared aiohttp session"
    )
    http_max_connections: int = Field(
        100, description="Connector limit: sockets open at once across all upstreams"
    )

    # ------------------------------------------------------------------ #
    # Derived values                                                      #
    # ------------------------------------------------------------------ #
    @property
    def max_image_upload_bytes(self) -> int:
        return self.max_image_upload_mb * 1024 * 1024

    @property
    def imgbb_key_list(self) -> tuple[str, ...]:
        return _split_keys(self.imgbb_api_keys)

    @property
    def serpapi_key_list(self) -> tuple[str, ...]:
        return _split_keys(self.serpapi_api_keys)

    def detector_endpoint(self, spec: DetectorSpec) -> str:
        if spec.endpoint:
            return spec.endpoint
        return f"{self.hf_inference_base_url.rstrip('/')}/{spec.name}"


def _split_keys(raw: str) -> tuple[str, ...]:
    return tuple(k.strip() for k in raw.split(",") if k.strip())


# Single shared instance, import this everywhere.
settings = Settings()
