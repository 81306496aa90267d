import pytest

from domain.models import BoundingBox, GeoPoint
from repositories import CanonicalPlacesRepository, CoveragePlacesRepository
from repositories.models import CoveragePlaceORM, PlaceORM
from services.query_builder import (
    KM_PER_DEGREE_LAT,
    MAX_RADIUS_KM,
    bbox_around,
    bbox_index_filter,
    build_bounds_params,
    build_search_params,
    category_index_filter,
    radius_index_filter,
    resolve_category,
    typo_budget,
)

CHICAGO = GeoPoint(lat=41.88, lng=-87.63)


def test_bbox_index_filter_plain_box():
    bbox = BoundingBox(north=41.9, south=41.8, east=-87.6, west=-87.7)
    assert bbox_index_filter(bbox) == (
        "geocodes_lat:[41.8..41.9] && geocodes_lng:[-87.7..-87.6]"
    )


def test_bbox_index_filter_across_antimeridian():
    bbox = BoundingBox(north=10.0, south=-10.0, east=-170.0, west=170.0)
    assert bbox_index_filter(bbox) == (
        "geocodes_lat:[-10..10] && "
        "(geocodes_lng:[170..180] || geocodes_lng:[-180..-170])"
    )


def test_radius_filter_is_clamped():
    assert radius_index_filter(CHICAGO, 5) == "location:(41.88, -87.63, 5 km)"
    assert radius_index_filter(CHICAGO, 10_000).endswith(f"{MAX_RADIUS_KM:g} km)")


def test_category_mapping():
    assert resolve_category("All") is None
    assert resolve_category("  ") is None
    assert resolve_category(None) is None
    assert resolve_category("Coffee").sql_term == "cafe"
    assert category_index_filter("bars") == "categories:=`Dining and Drinking > Bar`"
    # unknown names pass through
    assert resolve_category("Bookstore").sql_term == "Bookstore"
    assert category_index_filter("Bookstore") == "categories:=`Bookstore`"


def test_typo_budget_scales_with_length():
    assert typo_budget("mi") == 0
    assert typo_budget("bbq") == 0
    assert typo_budget("pizza") == 1
    assert typo_budget("starbucks") == 2
    assert typo_budget("") == 0


def test_search_params_with_location_rank_text_then_distance():
    params = build_search_params("pizza", location=CHICAGO, radius_km=10, category="food")
    assert params["q"] == "pizza"
    assert params["sort_by"] == "_text_match:desc,location(41.88, -87.63):asc,popularity:desc"
    assert params["num_typos"] == 1
    assert params["prefix"] == "false"
    assert params["query_by_weights"] == "5,3,2,1,1"
    assert "location:(41.88, -87.63, 10 km)" in params["filter_by"]
    assert "categories:=`Dining and Drinking > Restaurant`" in params["filter_by"]


def test_search_params_wildcard_with_location_sorts_by_distance():
    params = build_search_params("  ", location=CHICAGO)
    assert params["q"] == "*"
    assert params["sort_by"].startswith("location(41.88, -87.63):asc")
    assert params["num_typos"] == 0
    assert "filter_by" not in params


def test_search_params_without_location_and_intent_filters():
    params = build_search_params("pizza", locality="hoboken", region="NJ", page=99)
    assert params["sort_by"] == "_text_match:desc,popularity:desc"
    assert params["filter_by"] == "location_locality:=`hoboken` && location_region:=`NJ`"
    assert params["page"] == 10


def test_autocomplete_params_are_name_prefix_only():
    params = build_search_params("sta", autocomplete=True, per_page=16)
    assert params["query_by"] == "name"
    assert params["prefix"] == "true"
    assert params["per_page"] == 16
    assert "query_by_weights" not in params


def test_bounds_params_sort_from_box_center():
    bbox = BoundingBox(north=42.0, south=41.0, east=-87.0, west=-88.0)
    params = build_bounds_params(bbox, category="hotel", per_page=50)
    assert params["q"] == "*"
    assert params["sort_by"] == "location(41.5, -87.5):asc,popularity:desc"
    assert params["filter_by"].startswith("geocodes_lat:[41..42] && geocodes_lng:[-88..-87]")
    assert params["filter_by"].endswith("categories:=`Travel and Transportation > Lodging > Hotel`")
    assert params["per_page"] == 50


def _seed(session):
    session.add_all(
        [
            PlaceORM(id="in", name="Inside", latitude=41.5, longitude=-87.5, tavvy_category="Restaurant"),
            PlaceORM(id="out", name="Outside", latitude=45.0, longitude=-87.5, tavvy_category="Restaurant"),
            PlaceORM(id="bar", name="Bar", latitude=41.6, longitude=-87.6, tavvy_category="Bar"),
            PlaceORM(
                id="closed", name="Gone", latitude=41.5, longitude=-87.5, tavvy_category="Restaurant",
                status="closed",
            ),
            PlaceORM(id="fiji", name="Fiji", latitude=-17.7, longitude=178.0),
            PlaceORM(id="samoa", name="Samoa", latitude=-13.8, longitude=-172.0),
        ]
    )
    session.commit()


def test_bbox_and_category_predicates_against_sqlite(session_factory):
    repo = CanonicalPlacesRepository()
    with session_factory() as session:
        _seed(session)
        bbox = BoundingBox(north=42.0, south=41.0, east=-87.0, west=-88.0)
        assert [r.id for r in repo.list_in_bounds(session, bbox)] == ["bar", "in"]
        assert [r.id for r in repo.list_in_bounds(session, bbox, category="restaurant")] == ["in"]
        assert [r.id for r in repo.list_in_bounds(session, bbox, category="All")] == ["bar", "in"]

        pacific = BoundingBox(north=0.0, south=-20.0, east=-170.0, west=170.0)
        assert [r.id for r in repo.list_in_bounds(session, pacific)] == ["fiji", "samoa"]


def test_coverage_text_search_escapes_like_wildcards(session_factory):
    repo = CoveragePlacesRepository()
    with session_factory() as session:
        session.add_all(
            [
                CoveragePlaceORM(fsq_id="1", name="100% Juice", city="Hoboken", region="NJ"),
                CoveragePlaceORM(fsq_id="2", name="1000 Juices", city="Hoboken", region="NJ"),
                CoveragePlaceORM(fsq_id="3", name="100% Juice", city="Austin", region="TX"),
            ]
        )
        session.commit()
        assert [r.fsq_id for r in repo.search_by_name(session, "100%")] == ["1", "3"]
        found = repo.search_by_name(session, "juice", locality="hobo", region="NJ")
        assert [r.fsq_id for r in found] == ["1", "2"]


def test_bbox_around_encloses_the_circle():
    box = bbox_around(CHICAGO, 10)
    dlat = 10 / KM_PER_DEGREE_LAT
    assert box.north == pytest.approx(CHICAGO.lat + dlat)
    assert box.south == pytest.approx(CHICAGO.lat - dlat)
    assert not box.crosses_antimeridian
    # longitude degrees shrink away from the equator
    assert box.east - box.west > box.north - box.south
    assert box.contains(CHICAGO.lat + dlat * 0.99, CHICAGO.lng)
    assert not box.contains(CHICAGO.lat + dlat * 1.01, CHICAGO.lng)


def test_bbox_around_wraps_the_antimeridian():
    box = bbox_around(GeoPoint(lat=0.0, lng=179.9), 50)
    assert box.crosses_antimeridian
    assert box.west == pytest.approx(179.9 - 50 / KM_PER_DEGREE_LAT)
    assert box.contains(0.0, -179.8)
    assert box.contains(0.0, 179.6)
    assert not box.contains(0.0, 0.0)


def test_bbox_around_near_pole_spans_all_longitudes():
    box = bbox_around(GeoPoint(lat=89.9, lng=10.0), 50)
    assert (box.north, box.west, box.east) == (90.0, -180.0, 180.0)
    assert box.south == pytest.approx(89.9 - 50 / KM_PER_DEGREE_LAT)


def test_bbox_around_clamps_radius():
    box = bbox_around(CHICAGO, 10_000)
    assert box.north == pytest.approx(CHICAGO.lat + MAX_RADIUS_KM / KM_PER_DEGREE_LAT)


def test_coverage_text_search_filters_category_box_country_and_offset(session_factory):
    repo = CoveragePlacesRepository()
    with session_factory() as session:
        session.add_all(
            [
                CoveragePlaceORM(fsq_id="1", name="Joe's Bar", latitude=41.88, longitude=-87.63,
                                 country="US", category_name="Dining and Drinking > Bar"),
                CoveragePlaceORM(fsq_id="2", name="Joe's Books", latitude=41.89, longitude=-87.62,
                                 country="US", category_name="Retail"),
                CoveragePlaceORM(fsq_id="3", name="Joe's Pub", latitude=43.65, longitude=-79.38,
                                 country="CA", subcategory_name="Bar"),
                CoveragePlaceORM(fsq_id="4", name="Joe's Tavern", latitude=41.87, longitude=-87.64,
                                 country="US", category_name="Dining and Drinking > Bar"),
            ]
        )
        session.commit()
        chicago = BoundingBox(north=42.0, south=41.0, east=-87.0, west=-88.0)

        assert [r.fsq_id for r in repo.search_by_name(session, "joe", category="bars")] == ["1", "3", "4"]
        assert [r.fsq_id for r in repo.search_by_name(session, "joe", bbox=chicago)] == ["1", "2", "4"]
        assert [r.fsq_id for r in repo.search_by_name(session, "joe", country="CA")] == ["3"]
        paged = repo.search_by_name(session, "joe", limit=2, offset=2)
        assert [r.fsq_id for r in paged] == ["3", "4"]
