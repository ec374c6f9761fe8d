from contextlib import asynccontextmanager

from fastapi import FastAPI
from app.core.config import settings
from app.core.redis import redis_client
from app.middleware.log_middleware import LogMiddleware
from app.api.deps import queue_service

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await queue_service.shutdown()
    await redis_client.close()

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

from fastapi.middleware.cors import CORSMiddleware

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(LogMiddleware)

@app.get("/")
async def root():
    return {"message": "Welcome to MediQueue API"}

from app.api.api import api_router
app.include_router(api_router, prefix=settings.API_V1_STR)
