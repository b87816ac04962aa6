"""Session storage for the TerraBuild API.

Sessions live in Redis with a TTL. When Redis is unreachable (local
development) they fall back to an in-process dictionary.
"""

from __future__ import annotations

import json
import secrets
from datetime import datetime, timedelta

import redis
import structlog

from terrabuild.config import get_config
from terrabuild.core.timeutil import utcnow

logger = structlog.get_logger(__name__)

SESSION_COOKIE = "session"
_REDIS_ERRORS = (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError)

# In-memory fallback for development when Redis is missing
_memory_sessions: dict[str, dict] = {}


def get_redis_client() -> redis.Redis:
    return redis.from_url(get_config().auth.redis_url, decode_responses=True)


def session_expiry() -> timedelta:
    return timedelta(hours=get_config().auth.session_expiry_hours)


def _key(token: str) -> str:
    return f"session:{token}"


def create_session(user_id: int, username: str, role: str) -> str:
    """Store a new session and return its token."""
    token = secrets.token_urlsafe(32)
    now = utcnow()
    expiry = session_expiry()
    data = {
        "user_id": user_id,
        "username": username,
        "role": role,
        "created_at": now.isoformat(),
        "expires_at": (now + expiry).isoformat(),
    }

    try:
        get_redis_client().setex(_key(token), int(expiry.total_seconds()), json.dumps(data))
    except _REDIS_ERRORS:
        logger.warning("session_store_fallback", reason="redis unavailable")
        _memory_sessions[token] = data
    return token


def _expired(data: dict) -> bool:
    return utcnow() > datetime.fromisoformat(data["expires_at"])


def validate_session(token: str | None) -> dict | None:
    """Session data for a token, or None when unknown or expired."""
    if not token:
        return None

    try:
        client = get_redis_client()
        raw = client.get(_key(token))
    except _REDIS_ERRORS:
        data = _memory_sessions.get(token)
        if data is None:
            return None
        if _expired(data):
            del _memory_sessions[token]
            return None
        return data

    if not raw:
        return None
    try:
        data = json.loads(raw)
        if _expired(data):
            client.delete(_key(token))
            return None
        return data
    except (json.JSONDecodeError, KeyError, ValueError):
        client.delete(_key(token))
        return None


def end_session(token: str | None) -> None:
    if not token:
        return
    try:
        get_redis_client().delete(_key(token))
    except _REDIS_ERRORS:
        _memory_sessions.pop(token, None)
