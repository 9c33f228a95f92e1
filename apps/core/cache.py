"""
Caching utilities for incident reads.

Provides centralized cache management with consistent keys, TTLs and
invalidation patterns. Cache failures are logged and degrade to a store
read; they never propagate to callers.
"""
import hashlib
import json
import logging
from typing import Any, Callable, Optional

from django.core.cache import cache

logger = logging.getLogger(__name__)


class CacheKeys:
    """Centralized cache key definitions with consistent naming."""

    # Single incident (TTL: 5 minutes)
    INCIDENT_DETAIL = "incident:{incident_id}:detail"
    INCIDENT_COMMENTS = "incident:{incident_id}:comments:{cursor}:{limit}"

    # Incident collections (TTL: 1-2 minutes)
    INCIDENT_LIST = "incidents:list:{query_hash}"
    INCIDENT_SEARCH = "incidents:search:{query_hash}"
    INCIDENT_STATS = "incidents:stats:{query_hash}"

    # Patterns removed on every incident mutation
    COLLECTION_PATTERNS = (
        "incidents:list:*",
        "incidents:search:*",
        "incidents:stats:*",
    )
    INCIDENT_PATTERN = "incident:{incident_id}:*"

    @classmethod
    def format(cls, key_template: str, **kwargs) -> str:
        """Format a cache key with provided parameters."""
        return key_template.format(**kwargs)

    @staticmethod
    def hash_query(query: dict) -> str:
        """
        Deterministic digest of a query.

        The query must already include the caller's RBAC scope filter so
        that users with different visibility never share a cache line.
        """
        canonical = json.dumps(query, sort_keys=True, separators=(',', ':'), default=str)
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


class CacheTTL:
    """Cache TTL (Time To Live) constants in seconds."""

    INCIDENT_DETAIL = 300  # 5 minutes
    INCIDENT_LIST = 120  # 2 minutes
    INCIDENT_COMMENTS = 120  # 2 minutes
    INCIDENT_STATS = 60  # 1 minute


class CacheService:
    """Service for managing cached data with consistent patterns."""

    @staticmethod
    def get(key: str, default: Any = None) -> Any:
        """
        Get value from cache.

        Args:
            key: Cache key
            default: Default value if key not found

        Returns:
            Cached value or default
        """
        try:
            value = cache.get(key, default)
            if value is not None:
                logger.debug(f"Cache HIT: {key}")
            else:
                logger.debug(f"Cache MISS: {key}")
            return value
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {str(e)}")
            return default

    @staticmethod
    def set(key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds (optional)

        Returns:
            True if successful, False otherwise
        """
        try:
            cache.set(key, value, timeout=ttl)
            logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {str(e)}")
            return False

    @staticmethod
    def delete(key: str) -> bool:
        """Delete a single key. Returns True if the call reached the cache."""
        try:
            cache.delete(key)
            logger.debug(f"Cache DELETE: {key}")
            return True
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {str(e)}")
            return False

    @staticmethod
    def delete_pattern(pattern: str) -> bool:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Pattern to match (e.g., "incident:123:*")

        Returns:
            True if successful, False otherwise
        """
        try:
            # django-redis walks matching keys with SCAN
            if hasattr(cache, 'delete_pattern'):
                cache.delete_pattern(pattern)
                logger.debug(f"Cache DELETE_PATTERN: {pattern}")
                return True
            else:
                logger.warning("delete_pattern not supported by cache backend")
                return False
        except Exception as e:
            logger.error(f"Cache delete_pattern error for pattern {pattern}: {str(e)}")
            return False

    @staticmethod
    def get_or_set(key: str, default_func: Callable, ttl: Optional[int] = None) -> Any:
        """
        Get value from cache or set it using default_func if not found.

        Errors raised by default_func propagate; cache errors do not.
        """
        value = CacheService.get(key)
        if value is None:
            value = default_func()
            if value is not None:
                CacheService.set(key, value, ttl)
        return value


class IncidentCacheInvalidator:
    """Utility for invalidating incident caches after writes."""

    @staticmethod
    def invalidate_incident_cache(incident_id=None) -> bool:
        """
        Drop cached incident reads.

        Collection entries (lists, searches, stats) are always removed
        since any of them may contain the changed incident. When an
        incident id is given, every entry scoped to it is removed too.
        Safe to call repeatedly.

        Returns:
            True if every pattern was processed without a cache error
        """
        patterns = list(CacheKeys.COLLECTION_PATTERNS)
        if incident_id:
            patterns.append(CacheKeys.format(CacheKeys.INCIDENT_PATTERN, incident_id=incident_id))

        results = [CacheService.delete_pattern(pattern) for pattern in patterns]
        logger.info(
            f"Invalidated incident cache (incident {incident_id or 'all'})",
            extra={'incident_id': str(incident_id) if incident_id else None}
        )
        return all(results)
