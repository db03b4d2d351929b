"""FastAPI application entry point.

Startup sequence: load catalog → build system prompt → init Gemini adapter →
create Gateway → create session registry.
"""

import os
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import JSONResponse

from shopbot.api.rate_limit import LIMITED_PATHS, SessionRateLimiter, session_id_from_body
from shopbot.api.routes import router
from shopbot.assistant.conversation import ConversationManager, RecommendationTrigger
from shopbot.assistant.gateway import AssistantGateway
from shopbot.assistant.prompts import build_system_prompt
from shopbot.assistant.sessions import SessionRegistry
from shopbot.core.llm_adapter import GeminiAdapter
from shopbot.core.matcher import LocalMatcher
from shopbot.data.catalog import load_catalog

load_dotenv()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("startup.begin")

    # Catalog is static for the life of the process
    repository = load_catalog()
    app.state.repository = repository
    system_prompt = build_system_prompt(repository.all())
    logger.info("startup.catalog_loaded", products=len(repository), prompt_chars=len(system_prompt))

    # Gemini client construction fails without an API key
    try:
        adapter = GeminiAdapter()
        app.state.gateway = AssistantGateway(adapter, repository, system_instruction=system_prompt)
        logger.info("startup.gateway_created", model=adapter.model_name,
                    fallback=adapter.fallback_model_name, healthy=adapter.is_healthy())
    except Exception as e:
        app.state.gateway = None
        logger.error("startup.gateway_failed", error=str(e),
                     hint="Set GEMINI_API_KEY in .env")

    matcher = LocalMatcher(repository)
    trigger = RecommendationTrigger()
    app.state.sessions = SessionRegistry(
        lambda: ConversationManager(app.state.gateway, matcher, trigger=trigger)
    )

    logger.info("startup.complete")
    yield
    logger.info("shutdown.complete")


app = FastAPI(
    title="ShopBot API",
    description="Storefront shopping assistant with multimodal chat",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

rate_limiter = SessionRateLimiter()


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Throttle chat and search posts per session."""
    if request.method != "POST" or request.url.path not in LIMITED_PATHS:
        return await call_next(request)

    body = await request.body()
    if not rate_limiter.allow(session_id_from_body(body)):
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please wait a moment."},
        )

    # Body stream is consumed; replay it for the route handler
    async def replay_body():
        return {"type": "http.request", "body": body}

    return await call_next(StarletteRequest(request.scope, replay_body))


app.include_router(router)
