"""
Feedback route: /feedback, a log sink, nothing is stored.
"""

import logging

from fastapi import APIRouter, Form

from app.schemas.detection import FeedbackResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Feedback"])

_MAX_LOGGED_CHARS = 2000


@router.post("/feedback", response_model=FeedbackResponse)
async def submit_feedback(feedback: str = Form("")):
    logger.info(f"[FEEDBACK] {feedback[:_MAX_LOGGED_CHARS]!r}")
    return {"message": "Feedback submitted"}
