# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    chat: Synchronous learning pipeline turns.
    jobs: Asynchronous pipeline jobs (submit, poll, process).
    reviews: Spaced repetition reviews (due list, record result).
    opportunities: Proactive mission briefings.
"""

from fastapi import APIRouter

from src.api.v1 import chat, jobs, opportunities, reviews

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

router.include_router(chat.router, prefix="/chat", tags=["Chat"])
router.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
router.include_router(reviews.router, prefix="/reviews", tags=["Reviews"])
router.include_router(opportunities.router, prefix="/opportunities", tags=["Opportunities"])

__all__ = ["router"]
