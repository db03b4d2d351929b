"""FastAPI endpoints for the ShopBot API.

POST /chat - run one conversation turn
GET /history/{session_id} - fetch the session transcript
POST /search - storefront search (restock offer on a miss)
GET /suggest - header autosuggest
GET /products, /products/{product_id} - catalog reads
GET /health - component health check

Every handler is `async def` so all transcript mutation stays on the event
loop thread; sync handlers would run in FastAPI's threadpool.
"""

import time

import structlog
from fastapi import APIRouter, HTTPException, Query, Request

from shopbot.api.schemas import (
    ChatRequest,
    ChatResponse,
    HistoryResponse,
    MessageRecord,
    ProductsResponse,
    SearchRequest,
    SearchResponse,
)
from shopbot.assistant import storefront
from shopbot.assistant.prompts import GREETING
from shopbot.core.history import ConversationTurn
from shopbot.core.media import ImageAttachment, InvalidImageError
from shopbot.data.catalog import Product

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, req: Request):
    """Submit a turn and return the assistant's answer."""
    start = time.monotonic()
    session_id = request.session_id

    logger.info("chat.request", session_id=session_id, msg_len=len(request.message),
                has_image=request.image is not None)

    if req.app.state.gateway is None:
        raise HTTPException(status_code=503, detail="Assistant not available. Configure GEMINI_API_KEY in .env and restart.")

    image = None
    if request.image:
        try:
            image = ImageAttachment.from_data_url(request.image)
        except InvalidImageError as e:
            raise HTTPException(status_code=422, detail=str(e))

    manager = req.app.state.sessions.get_or_create(session_id)
    accepted = await manager.submit(request.message, image)
    if not accepted:
        logger.info("chat.rejected", session_id=session_id, in_flight=manager.in_flight)
        raise HTTPException(status_code=409, detail="Still answering your previous message. Please wait.")

    reply = manager.transcript[-1]
    latency_ms = int((time.monotonic() - start) * 1000)
    logger.info("chat.response", session_id=session_id, latency_ms=latency_ms,
                recommendations=len(reply.recommended_products or ()))

    return ChatResponse(
        session_id=session_id,
        text=reply.content,
        recommended_products=list(reply.recommended_products) if reply.recommended_products else None,
        latency_ms=latency_ms,
    )


@router.get("/history/{session_id}", response_model=HistoryResponse)
async def history(session_id: str, req: Request):
    """Fetch the transcript for a session.

    Unknown sessions get a greeting-only view and are not registered; a
    session starts with its first chat or search post.
    """
    manager = req.app.state.sessions.get(session_id)
    if manager is None:
        greeting = ConversationTurn(role="system", content=GREETING)
        return HistoryResponse(
            session_id=session_id,
            version=0,
            in_flight=False,
            messages=[MessageRecord.from_turn(greeting)],
        )

    return HistoryResponse(
        session_id=session_id,
        version=manager.version,
        in_flight=manager.in_flight,
        messages=[MessageRecord.from_turn(turn) for turn in manager.transcript],
    )


@router.post("/search", response_model=SearchResponse)
async def search(request: SearchRequest, req: Request):
    """Storefront search. A miss drops a restock offer into the session's chat."""
    manager = req.app.state.sessions.get_or_create(request.session_id)
    version_before = manager.version

    products = storefront.search(req.app.state.repository, manager, request.term)

    assistant_message = None
    if manager.version != version_before:
        assistant_message = manager.transcript[-1].content

    return SearchResponse(term=request.term, products=products, assistant_message=assistant_message)


@router.get("/suggest", response_model=ProductsResponse)
async def suggest(req: Request, q: str = Query("", max_length=200)):
    """Header autosuggest, at most five products."""
    return ProductsResponse(products=storefront.suggest(req.app.state.repository, q))


@router.get("/products", response_model=ProductsResponse)
async def list_products(req: Request):
    return ProductsResponse(products=list(req.app.state.repository.all()))


@router.get("/products/{product_id}", response_model=Product)
async def get_product(product_id: str, req: Request):
    product = req.app.state.repository.get(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Unknown product: {product_id}")
    return product


@router.get("/health")
async def health(req: Request):
    """Check health of all backend components."""
    components = {}

    gateway = req.app.state.gateway
    components["gemini"] = "ok" if gateway is not None and gateway.is_healthy() else "error"
    components["catalog"] = "ok" if len(req.app.state.repository) > 0 else "error"

    errors = [k for k, v in components.items() if v == "error"]
    if not errors:
        status = "healthy"
    elif len(errors) == len(components):
        status = "unhealthy"
    else:
        status = "degraded"

    return {"status": status, "components": components, "sessions": len(req.app.state.sessions)}


@router.get("/")
@router.head("/")
async def root_health():
    """Basic root health check for deployment platforms like Render."""
    return {"status": "ok", "service": "shopbot-api"}
