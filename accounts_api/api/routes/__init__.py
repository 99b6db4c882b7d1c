"""API routes."""

from fastapi import APIRouter

from accounts_api.api.routes import users

api_router = APIRouter()

api_router.include_router(users.router, tags=["users"])
