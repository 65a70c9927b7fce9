"""
FastAPI backend: severity classification (keyword + optional LLM) and the
conversational emergency-escalation protocol.
Severity only ever goes up when the LLM layer is merged in; LLM failures fall back to keywords.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from escalation.dispatch import HttpAlertDispatcher, InMemoryAlertDispatcher
from escalation.service import EscalationService
from inference.hybrid import hybrid_classify, openai_inference
from severity.classifier import KeywordSeverityClassifier
from severity.config import Settings
from severity.models import Channel, EmergencyContact

load_dotenv(override=True)

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("severity_api")

# -----------------------------------------------------------------------------
# Engine wiring (in-memory conversation state; never persisted)
# -----------------------------------------------------------------------------
settings = Settings.from_env()
classifier = KeywordSeverityClassifier()


def get_dispatcher():
    """HTTP dispatcher if DISPATCH_URL is set, else in-memory."""
    if settings.dispatch_url:
        return HttpAlertDispatcher(settings.dispatch_url, timeout=settings.dispatch_timeout_sec)
    return InMemoryAlertDispatcher()


service = EscalationService(
    classifier=classifier,
    inference=openai_inference(settings),
    dispatcher=get_dispatcher(),
)
analysis_inference = openai_inference(settings, analysis=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "starting hybrid_inference=%s dispatcher=%s",
        settings.hybrid_inference, type(service.dispatcher).__name__,
    )
    yield


app = FastAPI(title="Severity Escalation API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------------------------------------------------------------
# Request/response models
# -----------------------------------------------------------------------------
class DescriptionRequest(BaseModel):
    description: Optional[str] = None
    type: Optional[str] = None  # complaint category hint, e.g. verbal / physical / cyber


class HistoryTurn(BaseModel):
    role: str
    content: str


class ContactModel(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None


class MessageRequest(BaseModel):
    text: str
    channel: Channel = Channel.TEXT
    history: list[HistoryTurn] = Field(default_factory=list)
    user_name: Optional[str] = None
    user_id: Optional[str] = None
    org_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    contacts: Optional[list[ContactModel]] = None
    type: Optional[str] = None


class DispatchRequest(BaseModel):
    user_id: Optional[str] = None
    org_id: Optional[str] = None


# -----------------------------------------------------------------------------
# No-cache for dynamic API responses (avoid 304 for stale data)
# -----------------------------------------------------------------------------
NO_CACHE_HEADERS = {"Cache-Control": "no-store, no-cache, must-revalidate", "Pragma": "no-cache"}


def _bad_request(detail: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": detail}, headers=NO_CACHE_HEADERS)


def _description(body: DescriptionRequest) -> str:
    return (body.description or "").strip()


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------
@app.post("/classify")
def classify(body: DescriptionRequest):
    """Keyword classifier only: instant and deterministic."""
    text = _description(body)
    if not text:
        logger.warning("classify rejected: empty description")
        return _bad_request("description is required")
    result = classifier.classify(text)
    logger.info("classify text_len=%d severity=%s score=%d", len(text), result.severity.value, result.score)
    return JSONResponse(content=result.to_dict(), headers=NO_CACHE_HEADERS)


@app.post("/severity")
def severity(body: DescriptionRequest):
    """Keyword layer plus the LLM layer when configured; higher severity wins."""
    text = _description(body)
    if not text:
        return _bad_request("description is required")
    merged = hybrid_classify(text, classifier, service.inference)
    return JSONResponse(content=merged.to_dict(), headers=NO_CACHE_HEADERS)


@app.post("/analyze")
def analyze(body: DescriptionRequest):
    """Hybrid severity plus enrichment (sentiment, category, recommended action)."""
    text = _description(body)
    if not text:
        return _bad_request("description is required")
    merged = hybrid_classify(text, classifier, analysis_inference, category_hint=body.type)
    return JSONResponse(content=merged.to_dict(), headers=NO_CACHE_HEADERS)


@app.post("/conversation/{conversation_id}/message")
def post_message(conversation_id: str, body: MessageRequest):
    """One inbound chat/voice message through the escalation protocol."""
    text = (body.text or "").strip()
    if not text:
        logger.warning("message rejected: empty text conversation_id=%s", conversation_id)
        return _bad_request("text is required and cannot be empty")

    coordinates = None
    if body.latitude is not None and body.longitude is not None:
        coordinates = (float(body.latitude), float(body.longitude))
    contacts = [EmergencyContact(name=c.name, phone=c.phone, email=c.email) for c in body.contacts or []]

    result = service.handle_message(
        conversation_id,
        text,
        channel=body.channel,
        history=[t.model_dump() for t in body.history],
        user_name=body.user_name,
        user_id=body.user_id,
        org_id=body.org_id,
        coordinates=coordinates,
        contacts=contacts or None,
        category_hint=body.type,
    )
    # dispatch failure is a distinct, non-2xx outcome: contacts may not have been notified
    status_code = 502 if result.outcome == "dispatch_failed" else 200
    return JSONResponse(status_code=status_code, content=result.to_dict(), headers=NO_CACHE_HEADERS)


@app.get("/conversation/{conversation_id}")
def get_conversation(conversation_id: str):
    state = service.get_state(conversation_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return JSONResponse(content={"conversation_id": conversation_id, **state.to_dict()}, headers=NO_CACHE_HEADERS)


@app.post("/conversation/{conversation_id}/resolve")
def resolve_conversation(conversation_id: str):
    """External resolve action: back to Idle; the conversation is then forgotten (GET returns 404)."""
    try:
        state = service.resolve(conversation_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return JSONResponse(content={"conversation_id": conversation_id, **state.to_dict()}, headers=NO_CACHE_HEADERS)


@app.post("/conversation/{conversation_id}/dispatch")
def redispatch_alert(conversation_id: str, body: Optional[DispatchRequest] = None):
    """Retry delivery of an active alert whose first dispatch failed."""
    body = body or DispatchRequest()
    try:
        result = service.redispatch(conversation_id, user_id=body.user_id, org_id=body.org_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except LookupError:
        raise HTTPException(status_code=409, detail="No active alert for this conversation")
    status_code = 200 if result.ok else 502
    return JSONResponse(status_code=status_code, content=result.to_dict(), headers=NO_CACHE_HEADERS)


@app.get("/health")
def health():
    return JSONResponse(
        content={
            "status": "ok",
            "classifier": "hybrid" if service.inference is not None else "keyword",
            "dispatcher": type(service.dispatcher).__name__,
        },
        headers=NO_CACHE_HEADERS,
    )
