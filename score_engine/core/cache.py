import json
import logging
import redis
from score_engine.core.config import REDIS_URL, LEADERBOARD_CACHE_ENABLED, LEADERBOARD_CACHE_TTL

logger = logging.getLogger(__name__)
redis_client = redis.Redis.from_url(REDIS_URL, decode_responses=True)

def leaderboard_key(test_id: str) -> str:
    return f"leaderboard:{test_id}"

def get_cached_leaderboard(test_id: str) -> list | None:
    if not LEADERBOARD_CACHE_ENABLED: return None
    try:
        raw = redis_client.get(leaderboard_key(test_id))
    except redis.RedisError as e:
        logger.warning("Leaderboard cache read failed for %s: %s", test_id, e)
        return None
    return json.loads(raw) if raw else None

def cache_leaderboard(test_id: str, rows: list) -> None:
    if not LEADERBOARD_CACHE_ENABLED: return
    try:
        redis_client.set(leaderboard_key(test_id), json.dumps(rows), ex=LEADERBOARD_CACHE_TTL)
    except redis.RedisError as e:
        logger.warning("Leaderboard cache write failed for %s: %s", test_id, e)

def invalidate_leaderboard(test_id: str) -> None:
    if not LEADERBOARD_CACHE_ENABLED: return
    try:
        redis_client.delete(leaderboard_key(test_id))
    except redis.RedisError as e:
        # stale entries expire after LEADERBOARD_CACHE_TTL
        logger.warning("Leaderboard cache invalidation failed for %s: %s", test_id, e)
