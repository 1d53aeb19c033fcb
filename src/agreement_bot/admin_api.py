"""
Operator API for inspecting and resetting user conversations.

Run standalone:
    uvicorn agreement_bot.admin_api:app --port 8080

Endpoints:
    GET    /health                                — liveness check (no auth)
    GET    /conversations/{telegram_user_id}      — current state, draft and expiry
    DELETE /conversations/{telegram_user_id}      — drop the user's conversation
    POST   /conversations/reap                    — delete every expired conversation now

Authentication: shared key in the X-Admin-Key header (ADMIN_API_KEY).
An empty ADMIN_API_KEY disables every protected endpoint.
"""

import logging
from datetime import datetime
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel

from agreement_bot.config import settings
from agreement_bot.core.errors import PersistenceError
from agreement_bot.core.expiry import utc_now
from agreement_bot.core.scheduler import reap_expired_states
from agreement_bot.core.states import flow_kind_for
from agreement_bot.db.store import SqlConversationStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Agreement Bot Operator API", version="1.0.0")


# ── Dependencies ─────────────────────────────────────────────


async def verify_admin_key(x_admin_key: str = Header(...)) -> None:
    if not settings.admin_api_key or x_admin_key != settings.admin_api_key:
        raise HTTPException(status_code=403, detail="Invalid admin key")


def get_store() -> SqlConversationStore:
    return SqlConversationStore()


# ── Schemas ───────────────────────────────────────────────────


class ConversationOut(BaseModel):
    telegram_user_id: int
    state: str
    flow: str | None
    draft: dict[str, Any]
    expires_at: datetime
    expired: bool


class ReapOut(BaseModel):
    removed: int


# ── Endpoints ─────────────────────────────────────────────────


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/conversations/{telegram_user_id}", response_model=ConversationOut)
async def get_conversation(
    telegram_user_id: int,
    _: None = Depends(verify_admin_key),
    store: SqlConversationStore = Depends(get_store),
):
    """Raw stored conversation, including rows the bot already treats as expired."""
    try:
        record = await store.load_state(telegram_user_id)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if record is None:
        raise HTTPException(status_code=404, detail="No conversation for this user")

    kind = flow_kind_for(record.state_id)
    return ConversationOut(
        telegram_user_id=record.user_id,
        state=record.state_id,
        flow=kind.value if kind else None,
        draft=record.payload,
        expires_at=record.expires_at,
        expired=utc_now() > record.expires_at,
    )


@app.delete("/conversations/{telegram_user_id}", status_code=204)
async def delete_conversation(
    telegram_user_id: int,
    _: None = Depends(verify_admin_key),
    store: SqlConversationStore = Depends(get_store),
) -> None:
    try:
        await store.clear_state(telegram_user_id)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    logger.info("Operator reset conversation of user %d", telegram_user_id)


@app.post("/conversations/reap", response_model=ReapOut)
async def reap_conversations(
    _: None = Depends(verify_admin_key),
    store: SqlConversationStore = Depends(get_store),
):
    try:
        removed = await reap_expired_states(store)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return ReapOut(removed=removed)
