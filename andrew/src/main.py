"""
Andrew - Application Entry Point
=================================
FastAPI application factory.  Registers the routes from
``andrew.src.api.routes`` and configures CORS for the browser chat
widget.

The retrieval engine is *not* warmed here: it initialises lazily on the
first chat request that needs knowledge-base context.

Run:
    uvicorn andrew.src.main:app --reload
    python -m andrew.src.main
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from andrew.config.settings import settings
from andrew.src.api.routes import router
from andrew.src.utils.logger import get_logger

logger = get_logger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Andrew", description="Retrieval-augmented chat assistant.", version="0.1.0")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.include_router(router)
    logger.info("App created (env=%s, primary=%s, fallback=%s).", settings.ENV, settings.PRIMARY_LLM_MODEL, settings.FALLBACK_LLM_MODEL)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("andrew.src.main:app", host="0.0.0.0", port=8000, reload=settings.ENV == "dev")
