from fastapi import APIRouter

from gateway.api.routes import chat

api_router = APIRouter()
api_router.include_router(chat.router)
