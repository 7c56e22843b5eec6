import json
import hashlib
from typing import Any, Dict, Optional

import redis

from timetabler.config.settings import get_settings

settings = get_settings()


class TimetableCache:
    def __init__(self, redis_url: str = settings.redis_url):
        self.redis_client = redis.from_url(redis_url, decode_responses=True)

    def get(self, key: str) -> Optional[Dict]:
        """Retrieve a cached generation result."""
        cached = self.redis_client.get(f"timetable:{key}")
        if cached:
            return json.loads(cached)
        return None

    def set(self, key: str, result: Dict, ttl_seconds: int = settings.cache_ttl_seconds) -> None:
        self.redis_client.setex(
            f"timetable:{key}",
            ttl_seconds,
            json.dumps(result, default=str)
        )

    @staticmethod
    def hash_request(config: Dict[str, Any], seed: int, optimize_iterations: int, extra: Optional[Dict] = None) -> str:
        """Generation is deterministic, so these inputs fully identify the result."""
        data = json.dumps(
            {"config": config, "seed": seed, "iterations": optimize_iterations, "extra": extra or {}},
            sort_keys=True,
        )
        return hashlib.sha256(data.encode()).hexdigest()[:16]

    def health_check(self) -> bool:
        try:
            self.redis_client.ping()
            return True
        except redis.RedisError:
            return False


_cache: Optional[TimetableCache] = None


def get_cache() -> TimetableCache:
    global _cache
    if _cache is None:
        _cache = TimetableCache()
    return _cache
