import pytest

from smart_locations.config import DEFAULT_OVERPASS_ENDPOINTS, Config, Environment


def test_defaults(monkeypatch):
    for key in ("OVERPASS_ENDPOINTS", "CACHE_TTL_SEARCH", "TIMEOUT_OVERPASS", "MAX_TAGS"):
        monkeypatch.delenv(key, raising=False)
    cfg = Config()
    assert cfg.environment is Environment.TESTING
    assert cfg.provider_config.overpass_endpoints == DEFAULT_OVERPASS_ENDPOINTS
    assert cfg.timeout_config.overpass == 50.0
    assert cfg.timeout_config.nominatim == 10.0
    assert cfg.cache_config.ttl_search == 600
    assert cfg.provider_config.max_tags == 30
    assert cfg.to_dict()["auth_enabled"] is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("OVERPASS_ENDPOINTS", "https://a.example/api, https://b.example/api")
    monkeypatch.setenv("TIMEOUT_TRACKING", "12.5")
    monkeypatch.setenv("CACHE_TTL_SEARCH", "60")
    monkeypatch.setenv("NOMINATIM_URL", "https://geo.example/")
    cfg = Config()
    assert cfg.provider_config.overpass_endpoints == ["https://a.example/api", "https://b.example/api"]
    assert cfg.timeout_config.tracking == 12.5
    assert cfg.cache_config.ttl_search == 60
    assert cfg.provider_config.nominatim_url == "https://geo.example"


@pytest.mark.parametrize("key, value", [
    ("CACHE_TTL_SEARCH", "0"),
    ("TIMEOUT_OVERPASS", "-1"),
    ("CACHE_TTL_SEARCH", "ten"),
    ("OVERPASS_ENDPOINTS", " , "),
    ("REDIS_URL", "http://localhost:6379"),
    ("ENVIRONMENT", "moon"),
])
def test_invalid_values_raise(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ValueError):
        Config()
