# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Spaced repetition review endpoints.

- GET / - Reviews due now, most overdue first
- POST / - Record a review result (quality 0-5)
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.api.dependencies import get_mastery_engine
from src.core.memory import MasteryEngine

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class DueReviewItem(BaseModel):
    """A concept due for review."""

    concept_id: str
    concept_name: str
    concept_description: str
    subject_area: str
    next_review_at: datetime
    interval: int = Field(description="Current interval in days")
    repetitions: int = Field(description="Consecutive successful reviews")
    overdue_days: float


class DueReviewsResponse(BaseModel):
    reviews: list[DueReviewItem]
    count: int


class RecordReviewRequest(BaseModel):
    """One recall-quality observation."""

    user_id: str = Field(min_length=1, description="Learner ID")
    concept_id: str = Field(min_length=1, description="Reviewed concept")
    quality: float = Field(description="Recall quality 0-5; rounded and clamped")


class RecordReviewResponse(BaseModel):
    success: bool = True
    next_review_at: datetime
    interval_days: int
    mastery_delta: float


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "",
    response_model=DueReviewsResponse,
    summary="Get due reviews",
)
async def get_due_reviews(
    engine: Annotated[MasteryEngine, Depends(get_mastery_engine)],
    user_id: Annotated[str, Query(min_length=1, description="Learner ID")],
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    subject: Annotated[str | None, Query(description="Subject area filter")] = None,
) -> DueReviewsResponse:
    due = await engine.get_due_reviews(user_id, limit=limit, subject_area=subject)
    reviews = [
        DueReviewItem(
            concept_id=r.concept_id,
            concept_name=r.concept_name,
            concept_description=r.concept_description,
            subject_area=r.subject_area,
            next_review_at=r.next_review_at,
            interval=r.interval,
            repetitions=r.repetitions,
            overdue_days=r.overdue_days,
        )
        for r in due
    ]
    return DueReviewsResponse(reviews=reviews, count=len(reviews))


@router.post(
    "",
    response_model=RecordReviewResponse,
    summary="Record a review",
)
async def record_review(
    request: RecordReviewRequest,
    engine: Annotated[MasteryEngine, Depends(get_mastery_engine)],
) -> RecordReviewResponse:
    """Apply SM-2 to the concept's schedule and adjust mastery."""
    outcome = await engine.record_review(request.user_id, request.concept_id, request.quality)
    return RecordReviewResponse(
        next_review_at=outcome.next_review_at,
        interval_days=outcome.interval,
        mastery_delta=outcome.mastery_delta,
    )
