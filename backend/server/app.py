"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (OpenAI client, the voice session)
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from config import AppConfig
from observability.logger import log_component
from session.factory import build_voice_session
from session.voice_session import VoiceSession

from server.routes import register_routes


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    log_component("server", "SERVER_START")
    yield
    session: VoiceSession = app.state.session
    await session.close()
    log_component("server", "SERVER_STOPPED", session_id=session.session_id)


def create_app(*, session: VoiceSession | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with a prebuilt session
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = AppConfig.load_from_env()

    app = FastAPI(title="Life Story Voice API", lifespan=_lifespan)

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if session is None:
        # Create OpenAI client ONCE per process
        if not (config.openai_api_key or config.groq_api_key):
            raise RuntimeError("OPENAI_API_KEY environment variable not set")

        session = build_voice_session(
            config,
            build_llm_client(config=config),
        )

    # One local microphone and speaker, so one session per process
    app.state.session = session

    # Routes
    register_routes(app)

    return app


def build_llm_client(config: AppConfig) -> AsyncOpenAI:
    """Build an LLM client with the provider selected by environment variables."""
    if config.llm_provider.lower() == "groq":
        return AsyncOpenAI(
            api_key=config.groq_api_key,
            base_url="https://api.groq.com/openai/v1",
        )

    return AsyncOpenAI(api_key=config.openai_api_key)
