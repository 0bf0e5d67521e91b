"""
FastAPI + Socket.IO server for the pipeline editor.

Start with:
    python -m adpipeline.server.main

Or via uvicorn directly:
    uvicorn adpipeline.server.main:socket_app --port 3001 --reload
"""
from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

# Load .env before anything reads adpipeline.config
load_dotenv(os.path.join(os.getcwd(), ".env"))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from ..config import settings
from .routes.pipeline_routes import router
from .trace.socket_server import create_socket_app

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(title="Ad Pipeline API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")

# generated media is addressed as /pipeline-output/<file>
os.makedirs(settings.OUTPUT_DIR, exist_ok=True)
app.mount(f"/{settings.OUTPUT_SUBDIR}", StaticFiles(directory=settings.OUTPUT_DIR), name="pipeline-output")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


# socket_app is the top-level ASGI app passed to uvicorn. Socket.IO
# connections are handled at the root; all other requests are forwarded to
# the inner FastAPI app.
socket_app = create_socket_app(app)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "adpipeline.server.main:socket_app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False,
    )
