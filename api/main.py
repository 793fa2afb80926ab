"""
EventScope REST API

Thin FastAPI layer over the same Supabase queries the Streamlit app uses, for
clients that cannot talk to Supabase directly.

Run locally with:  uvicorn api.main:app --port 3000
"""
import logging
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from supabase import create_client

from eventscope import queries

load_dotenv()

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="EventScope API", version="1.0.0")


# Supabase Credentials
@lru_cache
def get_client():
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise RuntimeError("Missing Supabase credentials (SUPABASE_URL / SUPABASE_KEY)")
    return create_client(url, key)


# Every error leaves the API as {"error": "..."}
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    return JSONResponse(status_code=400, content={"error": str(exc)})


def _fail(action: str, error: Exception):
    logger.error(f"Error {action}: {error}")
    raise HTTPException(status_code=500, detail=str(error))


# REQUEST BODIES

class RatingIn(BaseModel):
    event_id: str
    user_id: str
    score: float
    review: Optional[str] = None
    was_present: bool = True


class VisitIn(BaseModel):
    event_id: str
    user_id: str


class UserEventsBatchIn(BaseModel):
    events: List[Dict[str, Any]]


class UserProfileIn(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


# HEALTH

@app.get("/")
def root():
    return {"message": "EventScope API", "version": "1.0.0"}


@app.get("/health")
@app.get("/api/health")
def health_check():
    try:
        queries.check_database(get_client())
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "database": "disconnected"})


# CITIES & CATEGORIES

@app.get("/api/cities")
def list_cities(client=Depends(get_client)):
    try:
        return queries.get_cities(client)
    except Exception as e:
        _fail("loading cities", e)


@app.get("/api/categories")
def list_categories(client=Depends(get_client)):
    try:
        return queries.get_categories(client)
    except Exception as e:
        _fail("loading categories", e)


# EVENTS

@app.get("/api/events")
def list_events(
    city_id: Optional[str] = Query(None, alias="cityId"),
    category_id: Optional[str] = Query(None, alias="categoryId"),
    limit: Optional[int] = Query(None, ge=1),
    client=Depends(get_client),
):
    try:
        return queries.get_events(client, city_id=city_id, category_id=category_id, limit=limit)
    except Exception as e:
        _fail("loading events", e)


@app.get("/api/events/{event_id}")
def get_event(event_id: str, client=Depends(get_client)):
    try:
        event = queries.get_event_by_id(client, event_id)
    except Exception as e:
        _fail(f"loading event {event_id}", e)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@app.delete("/api/events/{event_id}")
def remove_event(event_id: str, client=Depends(get_client)):
    try:
        queries.delete_event(client, event_id)
        return {"success": True}
    except Exception as e:
        _fail(f"deleting event {event_id}", e)


# RATINGS

@app.get("/api/ratings")
def list_ratings(client=Depends(get_client)):
    try:
        return queries.get_all_ratings(client)
    except Exception as e:
        _fail("loading ratings", e)


@app.post("/api/ratings", status_code=201)
def create_rating(rating: RatingIn, client=Depends(get_client)):
    try:
        return queries.create_rating(
            client, rating.event_id, rating.user_id, rating.score, rating.review, rating.was_present
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        _fail("saving rating", e)


@app.get("/api/ratings/event/{event_id}")
def list_event_ratings(event_id: str, client=Depends(get_client)):
    try:
        return queries.get_event_ratings(client, event_id)
    except Exception as e:
        _fail(f"loading ratings for event {event_id}", e)


@app.delete("/api/ratings/{rating_id}")
def remove_rating(rating_id: str, client=Depends(get_client)):
    try:
        queries.delete_rating(client, rating_id)
        return {"success": True}
    except Exception as e:
        _fail(f"deleting rating {rating_id}", e)


# VISITS & VIEWS

@app.post("/api/visits", status_code=201)
def check_in(visit: VisitIn, client=Depends(get_client)):
    try:
        return queries.check_in(client, visit.event_id, visit.user_id)
    except Exception as e:
        _fail("checking in", e)


@app.get("/api/visits/check/{event_id}/{user_id}")
def has_checked_in(event_id: str, user_id: str, client=Depends(get_client)):
    try:
        return {"hasCheckedIn": queries.has_user_checked_in(client, event_id, user_id)}
    except Exception as e:
        _fail("checking visit", e)


@app.post("/api/views", status_code=201)
def track_view(view: VisitIn, client=Depends(get_client)):
    try:
        queries.track_event_view(client, view.event_id, view.user_id)
        return {"success": True}
    except Exception as e:
        _fail("recording view", e)


# USER EVENTS (TELEMETRY)

@app.post("/api/user-events", status_code=201)
def track_user_event(event: Dict[str, Any], client=Depends(get_client)):
    if not event.get("user_id") or not event.get("session_id"):
        raise HTTPException(status_code=400, detail="user_id and session_id are required")
    try:
        queries.save_user_event(client, event)
        return {"success": True}
    except Exception as e:
        _fail("saving user event", e)


@app.post("/api/user-events/batch", status_code=201)
def track_user_events(batch: UserEventsBatchIn, client=Depends(get_client)):
    try:
        saved = queries.save_user_events(client, batch.events)
        return {"success": True, "count": saved}
    except Exception as e:
        _fail("saving user events", e)


# USER PROFILES

@app.get("/api/users")
def list_users(client=Depends(get_client)):
    try:
        return queries.get_users(client)
    except Exception as e:
        _fail("loading users", e)


@app.get("/api/users/{user_id}")
def get_user(user_id: str, client=Depends(get_client)):
    try:
        profile = queries.get_user_profile(client, user_id)
    except Exception as e:
        _fail(f"loading user {user_id}", e)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


@app.post("/api/users")
def upsert_user(profile: UserProfileIn, client=Depends(get_client)):
    try:
        return queries.upsert_user_profile(client, profile.id, profile.name, profile.email)
    except Exception as e:
        _fail("saving user profile", e)
