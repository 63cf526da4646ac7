import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from resolution_engine.api.routes.resolution import router as resolution_router
from resolution_engine.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title="Resolution Package API",
    description="Review and execute actions proposed by boardroom sessions",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(resolution_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
