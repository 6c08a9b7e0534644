# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Opportunity endpoints.

- GET /briefing - Mission briefing for an opportunity matching the
  student's recent projects
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.api.dependencies import get_scout
from src.core.intelligence import LLMError
from src.core.orchestration.nodes import ProactiveOpportunityScout

logger = logging.getLogger(__name__)

router = APIRouter()


class OpportunityItem(BaseModel):
    id: str
    title: str
    type: str
    description: str
    age_range: str | None = None
    deadline: datetime | None = None


class BriefingResponse(BaseModel):
    """Mission briefing, empty when nothing matches yet."""

    briefing: str | None = Field(None, description="Quest-style briefing text")
    opportunity: OpportunityItem | None = Field(None, description="Selected opportunity")


@router.get(
    "/briefing",
    response_model=BriefingResponse,
    summary="Get a mission briefing",
)
async def get_briefing(
    scout: Annotated[ProactiveOpportunityScout, Depends(get_scout)],
    user_id: Annotated[str, Query(min_length=1, description="Learner ID")],
) -> BriefingResponse:
    try:
        mission = await scout.scout(user_id)
    except LLMError as e:
        logger.error("Failed to generate mission briefing for %s: %s", user_id, e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Briefing temporarily unavailable",
        ) from e

    if mission is None:
        return BriefingResponse()

    opp = mission.opportunity
    return BriefingResponse(
        briefing=mission.briefing,
        opportunity=OpportunityItem(
            id=opp.id,
            title=opp.title,
            type=opp.type,
            description=opp.description,
            age_range=opp.age_range,
            deadline=opp.deadline,
        ),
    )
