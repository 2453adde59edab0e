from __future__ import annotations

import math
from typing import Any

import pytest

from campus_router.cost_model import (
    EMPTY_CONTEXT,
    PROFILE_POLICIES,
    EcoPolicy,
    Profile,
    RoutingContext,
    WheelchairParams,
    WheelchairPolicy,
    edge_cost,
    explain_edge,
    normalize_profile,
    policy_for,
)
from campus_router.geo import polyline_length_m
from campus_router.routing_graph import GraphEdge

A = (-114.1319, 51.0789)
B = (-114.1310, 51.0787)


def _edge(**attrs: Any) -> GraphEdge:
    attrs.setdefault("length_m", 100.0)
    return GraphEdge(id="e", from_node=0, to_node=1, coords=(A, B), **attrs)


def _factors(edge: GraphEdge, profile: Profile, context: RoutingContext = EMPTY_CONTEXT) -> dict[str, str]:
    return {r.factor: r.impact for r in explain_edge(edge, profile, context)}


def test_every_profile_has_a_policy() -> None:
    assert set(PROFILE_POLICIES) == set(Profile)
    for profile in Profile:
        assert policy_for(profile).profile is profile


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("wheelchair", Profile.WHEELCHAIR),
        ("  ECO ", Profile.ECO),
        ("visually_impaired", Profile.VISUALLY_IMPAIRED),
        (None, Profile.DEFAULT),
        ("", Profile.DEFAULT),
        ("hovercraft", Profile.DEFAULT),
        (Profile.ECO, Profile.ECO),
    ],
)
def test_normalize_profile(raw, expected: Profile) -> None:
    assert normalize_profile(raw) is expected


def test_default_cost_is_length_or_geometry() -> None:
    assert edge_cost(_edge(indoor=True, is_stairs=True), Profile.DEFAULT) == 100.0
    no_length = _edge(length_m=None)
    assert edge_cost(no_length, Profile.DEFAULT) == pytest.approx(polyline_length_m((A, B)))
    assert explain_edge(_edge(indoor=True), Profile.DEFAULT) == []


@pytest.mark.parametrize("profile", list(Profile))
def test_closed_edge_is_impassable_for_every_profile(profile: Profile) -> None:
    assert edge_cost(_edge(closed=True, indoor=True), profile) == math.inf


def test_stairs_block_wheelchair_and_visually_impaired_only() -> None:
    stairs = _edge(is_stairs=True)
    assert edge_cost(stairs, Profile.WHEELCHAIR) == math.inf
    assert edge_cost(stairs, Profile.VISUALLY_IMPAIRED) == math.inf
    assert math.isfinite(edge_cost(stairs, Profile.ECO))


def test_wheelchair_multipliers() -> None:
    assert edge_cost(_edge(indoor=True), Profile.WHEELCHAIR) == pytest.approx(30.0)
    assert edge_cost(_edge(), Profile.WHEELCHAIR) == pytest.approx(250.0)
    # Width boundaries: 1.5 counts as wide, 1.0 is not narrow.
    assert edge_cost(_edge(indoor=True, width=1.5), Profile.WHEELCHAIR) == pytest.approx(30.0 * 0.9)
    assert edge_cost(_edge(indoor=True, width=1.0), Profile.WHEELCHAIR) == pytest.approx(30.0)
    assert edge_cost(_edge(indoor=True, min_width=0.8), Profile.WHEELCHAIR) == pytest.approx(30.0 * 1.4)

    assert edge_cost(_edge(indoor=True, incline_pct=3.0), Profile.WHEELCHAIR) == pytest.approx(30.0 * 0.95)
    assert edge_cost(_edge(indoor=True, incline_pct=5.0), Profile.WHEELCHAIR) == pytest.approx(30.0)
    assert edge_cost(_edge(indoor=True, incline_pct=8.0), Profile.WHEELCHAIR) == pytest.approx(30.0 * 1.5)
    assert edge_cost(_edge(indoor=True, incline_pct=8.5), Profile.WHEELCHAIR) == pytest.approx(30.0 * 2.0)

    # Bad smoothness is also "rough", so both multipliers apply.
    assert edge_cost(_edge(indoor=True, smoothness="bad"), Profile.WHEELCHAIR) == pytest.approx(30.0 * 1.5 * 1.25)
    assert edge_cost(_edge(indoor=True, surface="gravel"), Profile.WHEELCHAIR) == pytest.approx(30.0 * 1.25)

    amenities = _edge(indoor=True, has_curb_ramp=True, has_elevator=True, has_handrail=True, obstacle_free=True)
    assert edge_cost(amenities, Profile.WHEELCHAIR) == pytest.approx(30.0 * 0.85 * 0.8 * 0.9 * 0.9)


def test_wheelchair_icy_slope_penalty() -> None:
    icy = RoutingContext(icy=True)
    slope = _edge(indoor=True, incline_pct=4.0)
    assert edge_cost(slope, Profile.WHEELCHAIR, icy) == pytest.approx(30.0 * 1.6)
    assert "icy_slope" in _factors(slope, Profile.WHEELCHAIR, icy)
    flat = _edge(indoor=True, incline_pct=2.0)
    assert edge_cost(flat, Profile.WHEELCHAIR, icy) == pytest.approx(30.0 * 0.95)


def test_custom_parameters_are_honoured() -> None:
    policy = WheelchairPolicy(params=WheelchairParams(outdoor=5.0))
    assert policy.cost(_edge(), 100.0, EMPTY_CONTEXT) == pytest.approx(500.0)


def test_visually_impaired_multipliers() -> None:
    vi = Profile.VISUALLY_IMPAIRED
    assert edge_cost(_edge(indoor=True), vi) == pytest.approx(40.0)
    assert edge_cost(_edge(), vi) == pytest.approx(200.0)
    assert edge_cost(_edge(indoor=True, consistent_lighting=True, lighting=True), vi) == pytest.approx(40.0 * 0.6)
    assert edge_cost(_edge(indoor=True, lighting=True), vi) == pytest.approx(40.0 * 0.7)
    assert edge_cost(_edge(indoor=True, lighting=False), vi) == pytest.approx(40.0 * 2.0)
    assert edge_cost(_edge(indoor=True, crossing="zebra"), vi) == pytest.approx(40.0 * 0.85)

    assert edge_cost(_edge(indoor=True, turn_complexity=1.0), vi) == pytest.approx(40.0 * 1.03)
    assert edge_cost(_edge(indoor=True, turn_complexity=2.0), vi) == pytest.approx(40.0 * 1.1)
    assert edge_cost(_edge(indoor=True, turn_complexity=4.0), vi) == pytest.approx(40.0 * 1.3)


def test_visually_impaired_low_visibility_penalises_unlit_edges() -> None:
    dark = RoutingContext(low_visibility=True)
    vi = Profile.VISUALLY_IMPAIRED
    assert edge_cost(_edge(indoor=True), vi, dark) == pytest.approx(80.0)
    assert edge_cost(_edge(indoor=True, lighting=True), vi, dark) == pytest.approx(28.0)
    assert _factors(_edge(indoor=True), vi, dark)["poor_lighting"] == "negative"


def test_eco_multipliers() -> None:
    eco = Profile.ECO
    assert edge_cost(_edge(indoor=True), eco) == pytest.approx(350.0)
    assert edge_cost(_edge(), eco) == pytest.approx(50.0)
    assert edge_cost(_edge(footway="sidewalk"), eco) == pytest.approx(50.0 * 0.7)
    assert edge_cost(_edge(highway="footway", surface="grass"), eco) == pytest.approx(50.0 * 0.7 * 0.85)
    assert edge_cost(_edge(surface="asphalt"), eco) == pytest.approx(50.0 * 1.1)
    assert edge_cost(_edge(transit_nearby=True), eco) == pytest.approx(50.0 * 0.9)
    assert edge_cost(_edge(smoothness="horrible"), eco) == pytest.approx(50.0 * 1.2)
    assert edge_cost(_edge(smoothness="bad"), eco) == pytest.approx(50.0)
    assert edge_cost(_edge(incline_pct=10.0), eco) == pytest.approx(50.0)
    assert edge_cost(_edge(incline_pct=10.5), eco) == pytest.approx(50.0 * 1.3)
    assert edge_cost(_edge(incline_pct=5.0), eco) == pytest.approx(50.0 * 0.95)
    assert edge_cost(_edge(width=2.0), eco) == pytest.approx(50.0 * 0.9)
    # Eco only reads the nominal width.
    assert edge_cost(_edge(min_width=3.0), eco) == pytest.approx(50.0)


@pytest.mark.parametrize(
    ("profile", "indoor_impact"),
    [
        (Profile.WHEELCHAIR, "positive"),
        (Profile.VISUALLY_IMPAIRED, "positive"),
        (Profile.ECO, "negative"),
    ],
)
def test_indoor_outdoor_reasons_follow_cost_direction(profile: Profile, indoor_impact: str) -> None:
    indoor = _factors(_edge(indoor=True), profile)
    outdoor = _factors(_edge(indoor=False), profile)
    assert indoor["indoor"] == indoor_impact
    assert "outdoor" not in indoor
    assert outdoor["outdoor"] != indoor_impact
    assert "indoor" not in outdoor
    unknown = _factors(_edge(), profile)
    assert "indoor" not in unknown
    assert "outdoor" not in unknown
    assert edge_cost(_edge(indoor=True), profile) != edge_cost(_edge(indoor=False), profile)


def test_reasons_mirror_costed_conditions() -> None:
    edge = _edge(
        indoor=True,
        width=1.6,
        smoothness="excellent",
        incline_pct=2.0,
        has_elevator=True,
        has_handrail=True,
        obstacle_free=True,
        has_curb_ramp=True,
    )
    reasons = explain_edge(edge, Profile.WHEELCHAIR)
    assert [r.factor for r in reasons] == [
        "indoor",
        "wide_path",
        "smooth_surface",
        "gentle_slope",
        "elevator",
        "handrail",
        "obstacle_free",
        "curb_ramp",
    ]
    assert all(r.impact == "positive" for r in reasons)
    assert reasons[1].description == "Wide path (1.6m)"

    # A rough surface is penalised even when the smoothness tag is good.
    gravel = _edge(indoor=True, surface="gravel", smoothness="good")
    assert edge_cost(gravel, Profile.WHEELCHAIR) == pytest.approx(30.0 * 0.9 * 1.25)
    assert _factors(gravel, Profile.WHEELCHAIR) == {
        "indoor": "positive",
        "smooth_surface": "positive",
        "rough_surface": "negative",
    }
    bumpy = [r.factor for r in explain_edge(_edge(surface="gravel", smoothness="bad"), Profile.WHEELCHAIR)]
    assert bumpy.count("rough_surface") == 1

    eco = _factors(_edge(surface="concrete", incline_pct=12.0, width=2.5), Profile.ECO)
    assert eco == {"paved_surface": "negative", "steep_slope": "negative", "wide_path": "positive"}


def test_eco_very_rough_reason_matches_cost_condition() -> None:
    policy = EcoPolicy()
    rough = _edge(smoothness="very_bad")
    assert "very_rough_surface" in _factors(rough, Profile.ECO)
    assert policy.cost(rough, 100.0, EMPTY_CONTEXT) == pytest.approx(100.0 * 0.5 * 1.2)
