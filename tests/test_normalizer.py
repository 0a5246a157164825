from smart_locations.providers.normalizer import (
    Place,
    RawCandidate,
    flatten_address,
    mark_newly_observed,
    nominatim_candidates,
    normalize,
    overpass_candidates,
)
from smart_locations.providers.utils import Coordinate

ORIGIN = Coordinate(0.0, 0.0)


def test_overpass_point_resolution():
    elements = [
        {"type": "node", "id": 1, "lat": 0.001, "lon": 0.0, "tags": {"name": "A"}},
        {"type": "way", "id": 2, "center": {"lat": 0.002, "lon": 0.0}, "tags": {"name": "B"}},
        {"type": "relation", "id": 3, "tags": {"name": "no geometry"}},
        {"type": "node", "id": "x", "lat": 0.0, "lon": 0.0},
    ]
    candidates = overpass_candidates(elements)
    assert [(c.id, c.kind, c.lat) for c in candidates] == [(1, "node", 0.001), (2, "way", 0.002), (3, "relation", None)]

    places = normalize(candidates, ORIGIN)
    assert [p.id for p in places] == [1, 2]
    assert places[1].lat == 0.002


def test_sorted_by_distance_and_truncated():
    # roughly 1 m, 10 m, 500 m and 9999 m north of the origin
    offsets = {4: 9999, 1: 1, 3: 500, 2: 10}
    elements = [{"type": "node", "id": i, "lat": m / 111195.0, "lon": 0.0} for i, m in offsets.items()]
    places = normalize(overpass_candidates(elements), ORIGIN)
    assert [p.id for p in places] == [1, 2, 3, 4]
    assert [round(p.distance_m) for p in places] == [1, 10, 500, 9999]

    many = [{"type": "node", "id": i, "lat": i * 0.0001, "lon": 0.0} for i in range(1, 51)]
    top = normalize(overpass_candidates(many), ORIGIN, limit=20)
    assert len(top) == 20
    assert [p.id for p in top] == list(range(1, 21))


def test_equal_distance_tie_break_is_deterministic():
    a = RawCandidate(9, "way", 0.001, 0.0)
    b = RawCandidate(5, "node", 0.001, 0.0)
    c = RawCandidate(2, "node", 0.001, 0.0)
    for ordering in ([a, b, c], [c, a, b], [b, c, a]):
        assert [(p.kind, p.id) for p in normalize(ordering, ORIGIN)] == [("node", 2), ("node", 5), ("way", 9)]


def test_nan_coordinates_are_dropped():
    places = normalize([RawCandidate(1, "node", float("nan"), 0.0), RawCandidate(2, "node", 0.0, 0.0)], ORIGIN)
    assert [p.id for p in places] == [2]


def test_flatten_address_uses_fallback_fields():
    flat = flatten_address({
        "pedestrian": "Market Walk",
        "house_number": "12",
        "village": "Little Hampton",
        "postcode": "AB1 2CD",
        "country": "United Kingdom",
        "state": "England",
        "suburb": "ignored",
    })
    assert flat == {
        "addr:street": "Market Walk",
        "addr:housenumber": "12",
        "addr:city": "Little Hampton",
        "addr:postcode": "AB1 2CD",
        "addr:country": "United Kingdom",
        "addr:state": "England",
    }


def test_flatten_address_prefers_road_over_fallbacks_and_is_idempotent():
    flat = flatten_address({"road": "Main St", "street": "Other", "town": "Springfield"})
    assert flat["addr:street"] == "Main St"
    assert flat["addr:city"] == "Springfield"
    assert flatten_address(flat) == flat


def test_nominatim_hits_become_places():
    hits = [
        {
            "osm_id": 123, "osm_type": "way", "lat": "0.001", "lon": "0.0",
            "display_name": "Blue Bottle, Main St",
            "extratags": {"opening_hours": "Mo-Fr 08:00-18:00"},
            "address": {"road": "Main St", "city": "Springfield"},
        },
        {"lat": "0.0005", "lon": "0.0"},
    ]
    candidates = nominatim_candidates(hits, fallback_name="coffee")
    assert candidates[0].id == 123 and candidates[0].kind == "way"
    assert candidates[0].attributes == {
        "name": "Blue Bottle, Main St",
        "opening_hours": "Mo-Fr 08:00-18:00",
        "addr:street": "Main St",
        "addr:city": "Springfield",
    }
    assert candidates[1].id == 1 and candidates[1].kind == "node"
    assert candidates[1].attributes["name"] == "coffee"

    places = normalize(candidates, ORIGIN)
    assert [p.id for p in places] == [1, 123]


def test_place_dict_shape():
    place = Place(7, "node", 1.0, 2.0, {"name": "X"}, 12.6)
    assert place.to_dict() == {"id": 7, "type": "node", "lat": 1.0, "lon": 2.0, "tags": {"name": "X"}, "distance_m": 13}
    assert place.location == Coordinate(1.0, 2.0)
    back = Place.from_dict(place.to_dict())
    assert (back.id, back.kind, back.attributes) == (7, "node", {"name": "X"})


def test_mark_newly_observed():
    current = [Place(1, "node", 0, 0, {}, 1), Place(2, "node", 0, 0, {}, 2), Place(1, "way", 0, 0, {}, 3)]
    previous = [{"id": 1, "type": "node"}, Place(2, "node", 0, 0, {}, 2)]
    flagged = mark_newly_observed(current, previous)
    assert [p.is_newly_added for p in flagged] == [False, False, True]
    assert flagged[2].to_dict()["isNewlyAdded"] is True
    # inputs are left untouched
    assert current[2].is_newly_added is None
