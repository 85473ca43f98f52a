"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import conversation

router = APIRouter()

router.include_router(conversation.router, tags=["conversation"])
