from fastapi import APIRouter
from app.api.v1 import queue

api_router = APIRouter()

api_router.include_router(queue.router, prefix="/queue", tags=["queue"])
