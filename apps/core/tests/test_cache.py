"""
Tests for the cache layer and incident cache invalidation.
"""
from unittest.mock import MagicMock, patch

from django.core.cache import cache

from apps.core.cache import CacheKeys, CacheService, CacheTTL, IncidentCacheInvalidator


class TestCacheKeys:

    def test_hash_query_ignores_key_order(self):
        a = CacheKeys.hash_query({'status': 'OPEN', 'limit': 20, 'scope': {}})
        b = CacheKeys.hash_query({'scope': {}, 'limit': 20, 'status': 'OPEN'})
        assert a == b

    def test_hash_query_separates_scopes(self):
        analyst = CacheKeys.hash_query({'scope': {}, 'limit': 20})
        client = CacheKeys.hash_query({'scope': {'created_by_id': 'u-1'}, 'limit': 20})
        assert analyst != client

    def test_format(self):
        key = CacheKeys.format(CacheKeys.INCIDENT_DETAIL, incident_id='abc')
        assert key == 'incident:abc:detail'

    def test_detail_outlives_collections(self):
        assert CacheTTL.INCIDENT_DETAIL > CacheTTL.INCIDENT_LIST > CacheTTL.INCIDENT_STATS


class TestCacheService:

    def test_set_and_get(self):
        assert CacheService.set('incident:x:detail', {'title': 'x'}, 60)
        assert CacheService.get('incident:x:detail') == {'title': 'x'}

    def test_get_or_set_computes_once(self):
        compute = MagicMock(return_value={'total': 3})

        assert CacheService.get_or_set('incidents:stats:k', compute, 60) == {'total': 3}
        assert CacheService.get_or_set('incidents:stats:k', compute, 60) == {'total': 3}
        compute.assert_called_once()

    def test_backend_errors_are_swallowed(self):
        broken = MagicMock()
        broken.get.side_effect = ConnectionError('redis down')
        broken.set.side_effect = ConnectionError('redis down')
        broken.delete_pattern.side_effect = ConnectionError('redis down')

        with patch('apps.core.cache.cache', broken):
            assert CacheService.get('k', default='fallback') == 'fallback'
            assert CacheService.set('k', 1) is False
            assert CacheService.delete_pattern('incident:*') is False
            assert CacheService.get_or_set('k', lambda: 'fresh') == 'fresh'


class TestIncidentCacheInvalidator:

    def _fill(self):
        cache.set('incident:a:detail', 1)
        cache.set('incident:a:comments:start:20', 1)
        cache.set('incident:b:detail', 1)
        cache.set('incidents:list:h1', 1)
        cache.set('incidents:search:h2', 1)
        cache.set('incidents:stats:h3', 1)

    def test_drops_incident_entries_and_collections(self):
        self._fill()

        assert IncidentCacheInvalidator.invalidate_incident_cache('a') is True

        assert cache.get('incident:a:detail') is None
        assert cache.get('incident:a:comments:start:20') is None
        assert cache.get('incidents:list:h1') is None
        assert cache.get('incidents:search:h2') is None
        assert cache.get('incidents:stats:h3') is None
        assert cache.get('incident:b:detail') == 1

    def test_without_id_only_drops_collections(self):
        self._fill()

        IncidentCacheInvalidator.invalidate_incident_cache()

        assert cache.get('incident:a:detail') == 1
        assert cache.get('incidents:list:h1') is None

    def test_is_idempotent(self):
        self._fill()
        assert IncidentCacheInvalidator.invalidate_incident_cache('a')
        assert IncidentCacheInvalidator.invalidate_incident_cache('a')
