import redis
from unittest.mock import MagicMock, patch

from learnpro.infrastructure.cache import (
    catalogue_key, delete_cache, delete_cache_pattern, get_cache, invalidate_course, lessons_key, ping, remember,
    set_cache,
)


@patch('learnpro.infrastructure.cache.get_redis')
def test_get_cache_hit(mock_redis):
    """Cache hit decodes JSON"""
    mock_client = MagicMock()
    mock_client.get.return_value = '{"key": "value"}'
    mock_redis.return_value = mock_client

    assert get_cache("test_key") == {"key": "value"}
    mock_client.get.assert_called_once_with("test_key")

@patch('learnpro.infrastructure.cache.get_redis')
def test_get_cache_miss(mock_redis):
    mock_client = MagicMock()
    mock_client.get.return_value = None
    mock_redis.return_value = mock_client

    assert get_cache("test_key") is None

@patch('learnpro.infrastructure.cache.get_redis')
def test_get_cache_error(mock_redis):
    """An unreachable Redis degrades to a miss"""
    mock_redis.side_effect = redis.ConnectionError("Redis down")
    assert get_cache("test_key") is None

@patch('learnpro.infrastructure.cache.get_redis')
def test_get_cache_corrupt_value(mock_redis):
    mock_client = MagicMock()
    mock_client.get.return_value = "{not json"
    mock_redis.return_value = mock_client
    assert get_cache("test_key") is None

@patch('learnpro.infrastructure.cache.get_redis')
def test_set_cache(mock_redis):
    mock_client = MagicMock()
    mock_redis.return_value = mock_client

    assert set_cache("test_key", {"key": "value"}, ttl=300) is True
    mock_client.setex.assert_called_once_with("test_key", 300, '{"key": "value"}')

@patch('learnpro.infrastructure.cache.get_redis')
def test_set_cache_error(mock_redis):
    mock_redis.side_effect = redis.ConnectionError("Redis down")
    assert set_cache("test_key", {"key": "value"}) is False

@patch('learnpro.infrastructure.cache.get_redis')
def test_delete_cache(mock_redis):
    mock_client = MagicMock()
    mock_redis.return_value = mock_client

    assert delete_cache("test_key") is True
    mock_client.delete.assert_called_once_with("test_key")

@patch('learnpro.infrastructure.cache.get_redis')
def test_delete_cache_pattern(mock_redis):
    mock_client = MagicMock()
    mock_client.scan_iter.return_value = iter(["key1", "key2", "key3"])
    mock_client.delete.return_value = 3
    mock_redis.return_value = mock_client

    assert delete_cache_pattern("key*") == 3
    mock_client.scan_iter.assert_called_once_with(match="key*")
    mock_client.delete.assert_called_once_with("key1", "key2", "key3")

@patch('learnpro.infrastructure.cache.get_redis')
def test_delete_cache_pattern_no_keys(mock_redis):
    mock_client = MagicMock()
    mock_client.scan_iter.return_value = iter([])
    mock_redis.return_value = mock_client

    assert delete_cache_pattern("key*") == 0
    mock_client.delete.assert_not_called()

@patch('learnpro.infrastructure.cache.get_redis')
def test_ping(mock_redis):
    mock_client = MagicMock()
    mock_client.ping.return_value = True
    mock_redis.return_value = mock_client
    assert ping() is True

    mock_client.ping.side_effect = redis.ConnectionError("Redis down")
    assert ping() is False

def test_catalogue_key_ignores_argument_order():
    assert catalogue_key(level="beginner", limit=10) == catalogue_key(limit=10, level="beginner")
    assert catalogue_key(level=None, limit=10).startswith("courses:list:")

def test_lessons_key():
    assert lessons_key(4) == "course:4:lessons"

@patch('learnpro.infrastructure.cache.get_redis')
def test_remember_miss_loads_and_stores(mock_redis):
    mock_client = MagicMock()
    mock_client.get.return_value = None
    mock_redis.return_value = mock_client
    loader = MagicMock(return_value=[{"id": 1}])

    assert remember("k", loader) == ([{"id": 1}], False)
    loader.assert_called_once()
    mock_client.setex.assert_called_once()

@patch('learnpro.infrastructure.cache.get_redis')
def test_remember_hit_skips_loader(mock_redis):
    mock_client = MagicMock()
    mock_client.get.return_value = '[{"id": 1}]'
    mock_redis.return_value = mock_client
    loader = MagicMock()

    assert remember("k", loader) == ([{"id": 1}], True)
    loader.assert_not_called()

@patch('learnpro.infrastructure.cache.get_redis')
def test_remember_without_redis_still_loads(mock_redis):
    mock_redis.side_effect = redis.ConnectionError("Redis down")
    assert remember("k", lambda: [1, 2]) == ([1, 2], False)

@patch('learnpro.infrastructure.cache.get_redis')
def test_invalidate_course_clears_catalogue_and_course_keys(mock_redis):
    mock_client = MagicMock()
    mock_client.scan_iter.side_effect = lambda match: iter([match])
    mock_client.delete.return_value = 1
    mock_redis.return_value = mock_client

    assert invalidate_course(3) == 2
    patterns = [c.kwargs["match"] for c in mock_client.scan_iter.call_args_list]
    assert patterns == ["courses:list:*", "course:3:*"]
