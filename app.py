"""
Behavioral Match Ranking API

FastAPI wrapper around MatchEngine.

When DATABASE_URL is set, signals, profiles, heating states, metric
rollups and the mirrored user directory live in PostgreSQL; otherwise
everything is kept in memory. The user service keeps users and blocks in
sync through the /users routes.
"""

import logging
import os
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from match_engine import __version__
from match_engine.config import EngineConfig
from match_engine.engine import MatchEngine
from match_engine.models.user import UserRecord
from match_engine.errors import (
    InvalidRequest,
    InvalidSignal,
    MatchEngineError,
    ProfileNotFound,
    StoreUnavailable,
    UserNotFound,
)

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Behavioral Match Ranking Engine",
    description="Record interaction signals and serve behavior-ranked candidate feeds",
    version=__version__,
)

_engine: Optional[MatchEngine] = None


def build_engine() -> MatchEngine:
    """Engine from environment settings."""
    config = EngineConfig.from_env()
    if not os.getenv('DATABASE_URL'):
        logger.info("DATABASE_URL not set; using in-memory stores")
        return MatchEngine.in_memory(config=config)

    from match_engine.storage.postgres import PostgresEngineStore

    store = PostgresEngineStore()
    store.init_schema()
    return MatchEngine(
        user_store=store,
        signal_store=store,
        profile_store=store,
        heating_store=store,
        metrics_store=store,
        config=config,
    )


def get_engine() -> MatchEngine:
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


# =============================================================================
# Request models
# =============================================================================

class SignalRequest(BaseModel):
    actor_id: str = Field(min_length=1)
    target_id: str = Field(min_length=1)
    signal_type: str
    metadata: Optional[Dict[str, Any]] = None


class HeatingRequest(BaseModel):
    trigger: str


class PaidInteractionRequest(BaseModel):
    actor_id: str = Field(min_length=1)
    target_id: str = Field(min_length=1)
    interaction_type: str
    amount: Optional[Decimal] = None


# =============================================================================
# Error mapping
# =============================================================================

def _http_error(e: MatchEngineError) -> HTTPException:
    if isinstance(e, (InvalidSignal, InvalidRequest)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (UserNotFound, ProfileNotFound)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, StoreUnavailable):
        logger.error(f"Store unavailable: {e}")
        return HTTPException(status_code=503, detail="Storage temporarily unavailable")
    logger.error(f"Unhandled engine error: {e}")
    return HTTPException(status_code=500, detail="Internal engine error")


# =============================================================================
# Routes
# =============================================================================

@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "behavioral-match-ranking",
        "version": __version__,
    }


@app.put("/users/{user_id}")
def save_user(user_id: str, user: UserRecord, engine: MatchEngine = Depends(get_engine)):
    """Insert or replace a user mirrored from the user service."""
    if user.user_id != user_id:
        raise HTTPException(status_code=400, detail="user_id in path and body differ")
    try:
        engine.save_user(user)
    except MatchEngineError as e:
        raise _http_error(e)
    return user.model_dump(mode='json')


@app.post("/users/{user_id}/blocks/{blocked_id}", status_code=201)
def block_user(user_id: str, blocked_id: str, engine: MatchEngine = Depends(get_engine)):
    try:
        engine.block_user(user_id, blocked_id)
    except MatchEngineError as e:
        raise _http_error(e)
    return {"blocker_id": user_id, "blocked_id": blocked_id}


@app.post("/signals", status_code=201)
def record_signal(request: SignalRequest, engine: MatchEngine = Depends(get_engine)):
    try:
        signal = engine.record_signal(
            request.actor_id, request.target_id, request.signal_type, request.metadata
        )
    except MatchEngineError as e:
        raise _http_error(e)
    return signal.to_dict()


@app.post("/signals/paid", status_code=201)
def record_paid_interaction(
    request: PaidInteractionRequest, engine: MatchEngine = Depends(get_engine)
):
    try:
        signal = engine.track_paid_interaction(
            request.actor_id, request.target_id, request.interaction_type, request.amount
        )
    except MatchEngineError as e:
        raise _http_error(e)
    return signal.to_dict()


@app.get("/feed/{viewer_id}")
def get_feed(
    viewer_id: str,
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = None,
    exclude: List[str] = Query(default=[]),
    engine: MatchEngine = Depends(get_engine),
):
    """Ranked candidates for viewer_id, highest score first."""
    try:
        page = engine.get_feed(viewer_id, limit=limit, cursor=cursor, exclude_ids=exclude)
    except MatchEngineError as e:
        raise _http_error(e)
    return page.to_dict()


@app.get("/profiles/{user_id}/behavior")
def get_behavior_profile(user_id: str, engine: MatchEngine = Depends(get_engine)):
    try:
        profile = engine.get_behavior_profile(user_id)
    except MatchEngineError as e:
        raise _http_error(e)
    return profile.to_dict()


@app.get("/profiles/{user_id}/preferences")
def get_learned_preferences(user_id: str, engine: MatchEngine = Depends(get_engine)):
    try:
        preferences = engine.get_learned_preferences(user_id)
    except MatchEngineError as e:
        raise _http_error(e)
    if preferences is None:
        raise HTTPException(status_code=404, detail=f"No learned preferences: {user_id}")
    return preferences.to_dict()


@app.get("/ranking/{viewer_id}/{candidate_id}")
def preview_ranking(
    viewer_id: str, candidate_id: str, engine: MatchEngine = Depends(get_engine)
):
    """Full score breakdown for one viewer/candidate pair."""
    try:
        score = engine.preview_ranking(viewer_id, candidate_id)
    except MatchEngineError as e:
        raise _http_error(e)
    return score.to_dict()


@app.get("/heating/{user_id}")
def get_heating_state(user_id: str, engine: MatchEngine = Depends(get_engine)):
    try:
        state = engine.get_heating_state(user_id)
    except MatchEngineError as e:
        raise _http_error(e)
    return {"user_id": user_id, "heating": state.to_dict() if state else None}


@app.post("/heating/{user_id}/activate")
def activate_heating(
    user_id: str, request: HeatingRequest, engine: MatchEngine = Depends(get_engine)
):
    try:
        state = engine.activate_heating(user_id, request.trigger)
    except MatchEngineError as e:
        raise _http_error(e)
    return {"user_id": user_id, "heating": state.to_dict() if state else None}


@app.delete("/heating/{user_id}")
def deactivate_heating(user_id: str, engine: MatchEngine = Depends(get_engine)):
    """Admin override: expire all current heating immediately."""
    try:
        expired = engine.deactivate_heating(user_id)
    except MatchEngineError as e:
        raise _http_error(e)
    return {"user_id": user_id, "expired": expired}


@app.get("/engine/health")
def engine_health(engine: MatchEngine = Depends(get_engine)):
    try:
        health = engine.get_engine_health()
    except MatchEngineError as e:
        raise _http_error(e)
    return health.to_dict()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv('PORT', '8000')))
