import pytest

from smart_locations.providers.normalizer import Place
from smart_locations.providers.overpass_provider import UpstreamUnavailable
from smart_locations.providers.utils import Coordinate
from smart_locations.groq.narrative import NarrativeOverloaded
from smart_locations.src import app as app_module
from smart_locations.src.auth import Authorizer
from smart_locations.src.preferences import DEFAULT_FAVORITES, PreferenceStore

app = app_module.app


class FakeService:
    def __init__(self, places=None, error=None):
        self.places = places or []
        self.error = error
        self.requests = []

    async def search(self, request, timeout=None):
        self.requests.append((request, timeout))
        if self.error is not None:
            raise self.error
        return self.places

    async def search_near_address(self, address, tags=None, keyword=None, limit=None, radius_km=None):
        if address == "nowhere":
            return None, None, []
        return Coordinate(48.85, 2.35), None, self.places


class FakeNarrative:
    def __init__(self, text="A fine plan", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate(self, prompt, **kwargs):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.text

    async def generate_report(self, elements):
        return await self.generate(str(elements))


PLACES = [Place(1, "node", 48.85, 2.35, {"name": "Louvre"}, 120.4), Place(2, "way", 48.86, 2.35, {}, 900.0)]


@pytest.mark.asyncio
async def test_search_returns_places(monkeypatch):
    service = FakeService(PLACES)
    monkeypatch.setattr(app_module, "search_service", service)
    async with app.test_client() as client:
        resp = await client.post("/api/search", json={"lat": 48.85, "lon": 2.35, "tags": ["tourism=museum"], "limit": 5})
        assert resp.status_code == 200
        data = await resp.get_json()
    assert [p["id"] for p in data["places"]] == [1, 2]
    assert data["places"][0]["distance_m"] == 120
    assert service.requests[0][0].limit == 5


@pytest.mark.asyncio
async def test_search_rejects_missing_coordinates(monkeypatch):
    service = FakeService(PLACES)
    monkeypatch.setattr(app_module, "search_service", service)
    async with app.test_client() as client:
        resp = await client.post("/api/search", json={"tags": ["tourism=museum"]})
        assert resp.status_code == 400
        assert "lat" in (await resp.get_json())["error"]
    assert service.requests == []


@pytest.mark.asyncio
async def test_search_reports_upstream_outage(monkeypatch):
    monkeypatch.setattr(app_module, "search_service", FakeService(error=UpstreamUnavailable(TimeoutError("slow"))))
    async with app.test_client() as client:
        resp = await client.post("/api/search", json={"lat": 1.0, "lon": 1.0, "tags": ["amenity=cafe"]})
        assert resp.status_code == 502
        data = await resp.get_json()
    assert data["error"] == "All Overpass API endpoints unavailable"
    assert data["details"] == "slow"


@pytest.mark.asyncio
async def test_track_flags_new_places_with_tracking_timeout(monkeypatch):
    service = FakeService(PLACES)
    monkeypatch.setattr(app_module, "search_service", service)
    async with app.test_client() as client:
        resp = await client.post("/api/search/track", json={
            "lat": 48.85, "lon": 2.35, "tags": ["tourism=museum"],
            "previous": [{"id": 1, "type": "node"}],
        })
        assert resp.status_code == 200
        data = await resp.get_json()
    assert [p["isNewlyAdded"] for p in data["places"]] == [False, True]
    assert service.requests[0][1] == app_module.config.timeout_config.tracking


@pytest.mark.asyncio
async def test_search_by_address(monkeypatch):
    monkeypatch.setattr(app_module, "search_service", FakeService(PLACES))
    async with app.test_client() as client:
        resp = await client.post("/api/search/address", json={"address": "Paris", "tags": ["tourism=museum"]})
        assert resp.status_code == 200
        data = await resp.get_json()
        assert data["center"] == {"lat": 48.85, "lon": 2.35}
        assert data["bbox"] is None

        missing = await client.post("/api/search/address", json={"address": "nowhere"})
        assert missing.status_code == 404
        empty = await client.post("/api/search/address", json={})
        assert empty.status_code == 400


@pytest.mark.asyncio
async def test_unauthorized_requests_are_rejected(monkeypatch):
    service = FakeService(PLACES)
    authorizer = Authorizer(enabled=True, secret="test-secret")
    monkeypatch.setattr(app_module, "search_service", service)
    monkeypatch.setattr(app_module, "authorizer", authorizer)
    body = {"lat": 1.0, "lon": 1.0, "tags": ["amenity=cafe"]}
    async with app.test_client() as client:
        resp = await client.post("/api/search", json=body)
        assert resp.status_code == 401
        assert service.requests == []

        token = authorizer.create_token("user-1")
        ok = await client.post("/api/search", json=body, headers={"Authorization": f"Bearer {token}"})
        assert ok.status_code == 200


@pytest.mark.asyncio
async def test_preferences_roundtrip(monkeypatch):
    monkeypatch.setattr(app_module, "preference_store", PreferenceStore())
    async with app.test_client() as client:
        resp = await client.get("/api/preferences/attractions")
        assert (await resp.get_json())["tags"] == DEFAULT_FAVORITES

        resp = await client.put("/api/preferences/attractions", json={"tags": ["amenity=cafe"], "customCategories": ["Coffee"]})
        assert (await resp.get_json()) == {"saved": True}
        data = await (await client.get("/api/preferences/attractions")).get_json()
        assert data == {"tags": ["amenity=cafe"], "customCategories": ["Coffee"]}

        bad = await client.put("/api/preferences/attractions", json={"tags": "amenity=cafe"})
        assert bad.status_code == 400

        await client.delete("/api/preferences/attractions")
        data = await (await client.get("/api/preferences/attractions")).get_json()
        assert data["tags"] == DEFAULT_FAVORITES


@pytest.mark.asyncio
async def test_narrative_routes(monkeypatch):
    narrative = FakeNarrative()
    monkeypatch.setattr(app_module, "narrative_client", narrative)
    async with app.test_client() as client:
        resp = await client.post("/api/narrative", json={"prompt": "What is near the Louvre?"})
        assert (await resp.get_json()) == {"response": "A fine plan"}

        resp = await client.post("/api/generate-report", json={"elements": [{"id": 1}]})
        assert (await resp.get_json()) == {"report": "A fine plan"}

        assert (await client.post("/api/narrative", json={})).status_code == 400
        assert (await client.post("/api/generate-report", json={"elements": []})).status_code == 400

    monkeypatch.setattr(app_module, "narrative_client", FakeNarrative(error=NarrativeOverloaded()))
    async with app.test_client() as client:
        resp = await client.post("/api/narrative", json={"prompt": "hi"})
        assert resp.status_code == 503
        assert "overloaded" in (await resp.get_json())["error"]


@pytest.mark.asyncio
async def test_healthz_and_cache_stats():
    async with app.test_client() as client:
        resp = await client.get("/healthz")
        assert resp.status_code == 200
        data = await resp.get_json()
        assert data["app"] == "ok"
        assert data["overpass_endpoints"] == 3

        stats = await (await client.get("/admin/cache")).get_json()
        assert stats["backend"] == "memory"
        assert "keys" not in stats
        assert data["settings"]["environment"] == "testing"


@pytest.mark.asyncio
async def test_metrics_endpoint():
    from smart_locations.src.metrics import increment, observe_latency
    await increment("test.counter", 2)
    await observe_latency("test.latency", 100.0)
    await observe_latency("test.latency", 120.0)

    async with app.test_client() as client:
        resp = await client.get("/metrics/json")
        assert resp.status_code == 200
        data = await resp.get_json()
    assert data["counters"]["test.counter"] == 2
    assert data["latencies"]["test.latency"]["count"] == 2
    assert data["latencies"]["test.latency"]["avg_ms"] == 110.0


@pytest.mark.asyncio
async def test_geocode_routes(monkeypatch):
    from smart_locations.providers import geocoding

    async def _search_addresses(query, limit=8, session=None):
        return [{"display_name": f"{query}, Paris"}]

    async def _reverse_geocode(lat, lon, session=None):
        if lat == 0.0:
            raise geocoding.NominatimError("Unable to geocode")
        return {"display_name": "Louvre, Paris", "address": {"city": "Paris"}, "osm_id": 1}

    monkeypatch.setattr(geocoding, "search_addresses", _search_addresses)
    monkeypatch.setattr(geocoding, "reverse_geocode", _reverse_geocode)
    async with app.test_client() as client:
        assert (await client.get("/api/address-search?q=ab")).status_code == 400
        resp = await client.get("/api/address-search", query_string={"q": "Rue de Rivoli"})
        assert (await resp.get_json()) == [{"display_name": "Rue de Rivoli, Paris"}]

        resp = await client.get("/api/reverse-geocode?lat=48.86&lon=2.33")
        assert (await resp.get_json()) == {"display_name": "Louvre, Paris", "address": {"city": "Paris"}}
        assert (await client.get("/api/reverse-geocode?lat=0&lon=0")).status_code == 502
        assert (await client.get("/api/reverse-geocode?lat=abc")).status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("method, path, body", [
    ("post", "/api/search", ["tourism=museum"]),
    ("post", "/api/search/track", "x"),
    ("post", "/api/search/address", ["Paris"]),
    ("post", "/api/narrative", ["hi"]),
    ("post", "/api/generate-report", "x"),
    ("put", "/api/preferences/attractions", ["amenity=cafe"]),
])
async def test_non_object_json_bodies_are_client_errors(monkeypatch, method, path, body):
    service = FakeService(PLACES)
    narrative = FakeNarrative()
    monkeypatch.setattr(app_module, "search_service", service)
    monkeypatch.setattr(app_module, "narrative_client", narrative)
    monkeypatch.setattr(app_module, "preference_store", PreferenceStore())
    async with app.test_client() as client:
        resp = await getattr(client, method)(path, json=body)
        assert resp.status_code == 400
        assert (await resp.get_json())["error"] == "JSON object body required"
    assert service.requests == []
    assert narrative.prompts == []


@pytest.mark.asyncio
async def test_cache_stats_hide_keys_and_need_auth(monkeypatch):
    from smart_locations.providers.caching import ResultCache

    cache = ResultCache()
    await cache.put(48.85661, 2.35221, ["keyword:pharmacy"], 5, 20, [])
    authorizer = Authorizer(enabled=True, secret="test-secret")
    monkeypatch.setattr(app_module, "result_cache", cache)
    monkeypatch.setattr(app_module, "authorizer", authorizer)
    async with app.test_client() as client:
        assert (await client.get("/admin/cache")).status_code == 401

        token = authorizer.create_token("ops")
        resp = await client.get("/admin/cache", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert (await resp.get_json()) == {"backend": "memory", "size": 1}


@pytest.mark.asyncio
async def test_preferences_are_scoped_to_the_token_subject(monkeypatch):
    authorizer = Authorizer(enabled=True, secret="test-secret")
    monkeypatch.setattr(app_module, "authorizer", authorizer)
    monkeypatch.setattr(app_module, "preference_store", PreferenceStore())
    alice = {"Authorization": f"Bearer {authorizer.create_token('alice')}"}
    bob = {"Authorization": f"Bearer {authorizer.create_token('bob')}"}
    async with app.test_client() as client:
        resp = await client.put("/api/preferences/attractions", json={"tags": ["amenity=cafe"]}, headers=alice)
        assert resp.status_code == 200

        assert (await (await client.get("/api/preferences/attractions", headers=alice)).get_json())["tags"] == ["amenity=cafe"]
        assert (await (await client.get("/api/preferences/attractions", headers=bob)).get_json())["tags"] == DEFAULT_FAVORITES
        assert (await client.get("/api/preferences/attractions")).status_code == 401
