from fastapi import APIRouter

from app.api.auth import router as auth_router
from app.api.connections import router as connections_router
from app.api.slack import router as slack_router
from app.api.users import router as users_router

api_router = APIRouter()

# Popup handshake routes at /auth/*
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])

# API routes at /api/*
api_router.include_router(users_router, prefix="/api", tags=["users"])
api_router.include_router(connections_router, prefix="/api", tags=["connections"])
api_router.include_router(slack_router, prefix="/api/slack", tags=["slack"])
