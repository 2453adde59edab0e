from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Literal

from .geo import polyline_length_m
from .routing_graph import GraphEdge

Impact = Literal["positive", "negative"]


class Profile(str, Enum):
    DEFAULT = "default"
    WHEELCHAIR = "wheelchair"
    VISUALLY_IMPAIRED = "visually_impaired"
    ECO = "eco"


@dataclass(frozen=True)
class RoutingContext:
    """Conditions that hold for a whole request (currently weather)."""

    icy: bool = False
    low_visibility: bool = False


EMPTY_CONTEXT = RoutingContext()


@dataclass(frozen=True)
class EdgeReason:
    factor: str
    impact: Impact
    description: str


def normalize_profile(raw: str | Profile | None) -> Profile:
    if isinstance(raw, Profile):
        return raw
    try:
        return Profile(str(raw or "").strip().lower())
    except ValueError:
        return Profile.DEFAULT


_ROUGH_SURFACES = frozenset({"gravel", "cobblestone", "unpaved"})
_BAD_SMOOTHNESS = frozenset({"bad", "very_bad", "horrible"})
_GOOD_SMOOTHNESS = frozenset({"excellent", "good"})
_VERY_BAD_SMOOTHNESS = frozenset({"very_bad", "horrible"})
_NATURAL_SURFACES = frozenset({"grass", "dirt", "earth", "ground"})
_PAVED_SURFACES = frozenset({"asphalt", "concrete"})
_GREEN_HIGHWAYS = frozenset({"path", "footway", "pedestrian"})
_MARKED_CROSSINGS = frozenset({"traffic_signals", "zebra"})


def _surface(edge: GraphEdge) -> str:
    return str(edge.surface or "").lower()


def _smoothness(edge: GraphEdge) -> str:
    return str(edge.smoothness or "").lower()


def _incline(edge: GraphEdge) -> float:
    return float(edge.incline_pct or 0.0)


def _is_rough(edge: GraphEdge) -> bool:
    return _surface(edge) in _ROUGH_SURFACES or _smoothness(edge) in _BAD_SMOOTHNESS


def _is_green(edge: GraphEdge) -> bool:
    return str(edge.highway or "").lower() in _GREEN_HIGHWAYS or str(edge.footway or "").lower() == "sidewalk"


def base_cost(edge: GraphEdge) -> float:
    if edge.length_m is not None:
        return float(edge.length_m)
    return polyline_length_m(edge.coords)


class ProfilePolicy:
    """Cost and narration rules for one profile.

    ``cost`` and ``reasons`` must look at the same conditions: the reasons are
    what the route explanation reports for an edge that ``cost`` weighted.
    """

    profile: ClassVar[Profile]

    def cost(self, edge: GraphEdge, base: float, context: RoutingContext) -> float:
        raise NotImplementedError

    def reasons(self, edge: GraphEdge, context: RoutingContext) -> list[EdgeReason]:
        raise NotImplementedError


class DefaultPolicy(ProfilePolicy):
    profile = Profile.DEFAULT

    def cost(self, edge: GraphEdge, base: float, context: RoutingContext) -> float:
        return base

    def reasons(self, edge: GraphEdge, context: RoutingContext) -> list[EdgeReason]:
        return []


@dataclass(frozen=True)
class WheelchairParams:
    indoor: float = 0.3
    outdoor: float = 2.5
    wide_min_m: float = 1.5
    wide: float = 0.9
    narrow_max_m: float = 1.0
    narrow: float = 1.4
    smooth: float = 0.9
    bad_smoothness: float = 1.5
    steep_above_pct: float = 8.0
    steep: float = 2.0
    moderate_above_pct: float = 5.0
    moderate: float = 1.5
    gentle_max_pct: float = 3.0
    gentle: float = 0.95
    icy_slope_above_pct: float = 3.0
    icy_slope: float = 1.6
    rough: float = 1.25
    curb_ramp: float = 0.85
    elevator: float = 0.8
    handrail: float = 0.9
    obstacle_free: float = 0.9


@dataclass(frozen=True)
class WheelchairPolicy(ProfilePolicy):
    profile: ClassVar[Profile] = Profile.WHEELCHAIR
    params: WheelchairParams = field(default_factory=WheelchairParams)

    @staticmethod
    def _width(edge: GraphEdge) -> float:
        return float(edge.width or edge.min_width or 0.0)

    def cost(self, edge: GraphEdge, base: float, context: RoutingContext) -> float:
        p = self.params
        if edge.is_stairs:
            return math.inf
        c = base
        c *= p.indoor if edge.indoor is True else p.outdoor

        width = self._width(edge)
        if width >= p.wide_min_m:
            c *= p.wide
        elif 0.0 < width < p.narrow_max_m:
            c *= p.narrow

        smoothness = _smoothness(edge)
        if smoothness in _GOOD_SMOOTHNESS:
            c *= p.smooth
        elif smoothness in _BAD_SMOOTHNESS:
            c *= p.bad_smoothness

        slope = _incline(edge)
        if slope > p.steep_above_pct:
            c *= p.steep
        elif slope > p.moderate_above_pct:
            c *= p.moderate
        elif 0.0 < slope <= p.gentle_max_pct:
            c *= p.gentle
        if context.icy and slope > p.icy_slope_above_pct:
            c *= p.icy_slope

        if _is_rough(edge):
            c *= p.rough
        if edge.has_curb_ramp:
            c *= p.curb_ramp
        if edge.has_elevator:
            c *= p.elevator
        if edge.has_handrail:
            c *= p.handrail
        if edge.obstacle_free:
            c *= p.obstacle_free
        return c

    def reasons(self, edge: GraphEdge, context: RoutingContext) -> list[EdgeReason]:
        p = self.params
        out: list[EdgeReason] = []
        if edge.indoor is True:
            out.append(EdgeReason("indoor", "positive", "Indoor route (protected from weather)"))
        elif edge.indoor is False:
            out.append(EdgeReason("outdoor", "negative", "Outdoor route (exposed to weather)"))

        width = self._width(edge)
        if width >= p.wide_min_m:
            out.append(EdgeReason("wide_path", "positive", f"Wide path ({width:.1f}m)"))
        elif 0.0 < width < p.narrow_max_m:
            out.append(EdgeReason("narrow_path", "negative", f"Narrow path ({width:.1f}m)"))

        smoothness = _smoothness(edge)
        if smoothness in _GOOD_SMOOTHNESS:
            out.append(EdgeReason("smooth_surface", "positive", f"Smooth surface ({smoothness})"))
        elif smoothness in _BAD_SMOOTHNESS:
            out.append(EdgeReason("rough_surface", "negative", f"Rough surface ({smoothness})"))
        if _surface(edge) in _ROUGH_SURFACES and smoothness not in _BAD_SMOOTHNESS:
            out.append(EdgeReason("rough_surface", "negative", f"Rough surface ({_surface(edge)})"))

        slope = _incline(edge)
        if slope > p.steep_above_pct:
            out.append(EdgeReason("steep_slope", "negative", f"Very steep slope ({slope:.1f}%)"))
        elif slope > p.moderate_above_pct:
            out.append(EdgeReason("moderate_slope", "negative", f"Moderate slope ({slope:.1f}%)"))
        elif 0.0 < slope <= p.gentle_max_pct:
            out.append(EdgeReason("gentle_slope", "positive", f"Gentle slope ({slope:.1f}%)"))
        if context.icy and slope > p.icy_slope_above_pct:
            out.append(EdgeReason("icy_slope", "negative", f"Icy slope ({slope:.1f}%)"))

        if edge.has_elevator:
            out.append(EdgeReason("elevator", "positive", "Elevator access available"))
        if edge.has_handrail:
            out.append(EdgeReason("handrail", "positive", "Handrail present"))
        if edge.obstacle_free:
            out.append(EdgeReason("obstacle_free", "positive", "Clear, obstacle-free path"))
        if edge.has_curb_ramp:
            out.append(EdgeReason("curb_ramp", "positive", "Curb ramp available"))
        return out


@dataclass(frozen=True)
class VisuallyImpairedParams:
    indoor: float = 0.4
    outdoor: float = 2.0
    consistent_lighting: float = 0.6
    lit: float = 0.7
    poor_lighting: float = 2.0
    audio_beacon: float = 0.75
    high_contrast: float = 0.85
    tactile_paving: float = 0.9
    handrail: float = 0.9
    obstacle_free: float = 0.85
    marked_crossing: float = 0.85
    complex_above: float = 3.0
    complex_turn: float = 1.3
    moderate_above: float = 1.0
    moderate_turn: float = 1.1
    simple_turn_step: float = 0.03


@dataclass(frozen=True)
class VisuallyImpairedPolicy(ProfilePolicy):
    profile: ClassVar[Profile] = Profile.VISUALLY_IMPAIRED
    params: VisuallyImpairedParams = field(default_factory=VisuallyImpairedParams)

    def cost(self, edge: GraphEdge, base: float, context: RoutingContext) -> float:
        p = self.params
        if edge.is_stairs:
            return math.inf
        c = base
        c *= p.indoor if edge.indoor is True else p.outdoor

        if edge.consistent_lighting is True:
            c *= p.consistent_lighting
        elif edge.lighting is True:
            c *= p.lit
        elif edge.lighting is False or context.low_visibility:
            c *= p.poor_lighting

        if edge.audio_beacon:
            c *= p.audio_beacon
        if edge.high_contrast:
            c *= p.high_contrast
        if edge.tactile_paving:
            c *= p.tactile_paving
        if edge.has_handrail:
            c *= p.handrail
        if edge.obstacle_free:
            c *= p.obstacle_free
        if str(edge.crossing or "") in _MARKED_CROSSINGS:
            c *= p.marked_crossing

        turns = float(edge.turn_complexity or 0.0)
        if turns > p.complex_above:
            c *= p.complex_turn
        elif turns > p.moderate_above:
            c *= p.moderate_turn
        else:
            c *= 1.0 + p.simple_turn_step * turns
        return c

    def reasons(self, edge: GraphEdge, context: RoutingContext) -> list[EdgeReason]:
        p = self.params
        out: list[EdgeReason] = []
        if edge.indoor is True:
            out.append(EdgeReason("indoor", "positive", "Indoor route (protected environment)"))
        elif edge.indoor is False:
            out.append(EdgeReason("outdoor", "negative", "Outdoor route (less predictable)"))

        if edge.consistent_lighting is True:
            out.append(EdgeReason("consistent_lighting", "positive", "Consistent, well-lit indoor area"))
        elif edge.lighting is True:
            out.append(EdgeReason("well_lit", "positive", "Well-lit path"))
        elif edge.lighting is False or context.low_visibility:
            out.append(EdgeReason("poor_lighting", "negative", "Poorly lit or low visibility"))

        if edge.audio_beacon:
            out.append(EdgeReason("audio_beacon", "positive", "Audio beacon/signal available"))
        if edge.high_contrast:
            out.append(EdgeReason("high_contrast", "positive", "High contrast markings"))
        if edge.tactile_paving:
            out.append(EdgeReason("tactile_paving", "positive", "Tactile paving for guidance"))
        if edge.has_handrail:
            out.append(EdgeReason("handrail", "positive", "Handrail for guidance"))
        if edge.obstacle_free:
            out.append(EdgeReason("obstacle_free", "positive", "Clear, obstacle-free path"))

        turns = float(edge.turn_complexity or 0.0)
        if turns > p.complex_above:
            out.append(EdgeReason("complex_intersection", "negative", "Very complex intersection"))
        elif turns > p.moderate_above:
            out.append(EdgeReason("moderate_complexity", "negative", "Moderate turn complexity"))
        if str(edge.crossing or "") in _MARKED_CROSSINGS:
            out.append(EdgeReason("marked_crossing", "positive", "Marked crossing (safer)"))
        return out


@dataclass(frozen=True)
class EcoParams:
    indoor: float = 3.5
    outdoor: float = 0.5
    green: float = 0.7
    natural_surface: float = 0.85
    paved_surface: float = 1.1
    transit_nearby: float = 0.9
    very_rough: float = 1.2
    steep_above_pct: float = 10.0
    steep: float = 1.3
    gentle_max_pct: float = 5.0
    gentle: float = 0.95
    wide_min_m: float = 2.0
    wide: float = 0.9


@dataclass(frozen=True)
class EcoPolicy(ProfilePolicy):
    profile: ClassVar[Profile] = Profile.ECO
    params: EcoParams = field(default_factory=EcoParams)

    @staticmethod
    def _very_rough(edge: GraphEdge) -> bool:
        return _is_rough(edge) and _smoothness(edge) in _VERY_BAD_SMOOTHNESS

    def cost(self, edge: GraphEdge, base: float, context: RoutingContext) -> float:
        p = self.params
        c = base
        c *= p.indoor if edge.indoor is True else p.outdoor
        if _is_green(edge):
            c *= p.green

        surface = _surface(edge)
        if surface in _NATURAL_SURFACES:
            c *= p.natural_surface
        elif surface in _PAVED_SURFACES:
            c *= p.paved_surface

        if edge.transit_nearby:
            c *= p.transit_nearby
        if self._very_rough(edge):
            c *= p.very_rough

        slope = _incline(edge)
        if slope > p.steep_above_pct:
            c *= p.steep
        elif 0.0 < slope <= p.gentle_max_pct:
            c *= p.gentle

        if float(edge.width or 0.0) >= p.wide_min_m:
            c *= p.wide
        return c

    def reasons(self, edge: GraphEdge, context: RoutingContext) -> list[EdgeReason]:
        p = self.params
        out: list[EdgeReason] = []
        if edge.indoor is False:
            out.append(EdgeReason("outdoor", "positive", "Outdoor route (enjoy nature)"))
        elif edge.indoor is True:
            out.append(EdgeReason("indoor", "negative", "Indoor route (prefer outdoor)"))
        if _is_green(edge):
            out.append(EdgeReason("green_path", "positive", "Green path (footway/pedestrian)"))

        surface = _surface(edge)
        if surface in _NATURAL_SURFACES:
            out.append(EdgeReason("natural_surface", "positive", f"Natural surface ({surface})"))
        elif surface in _PAVED_SURFACES:
            out.append(EdgeReason("paved_surface", "negative", f"Paved surface ({surface})"))

        if edge.transit_nearby:
            out.append(EdgeReason("transit_nearby", "positive", "Transit nearby (eco-friendly)"))
        if self._very_rough(edge):
            out.append(EdgeReason("very_rough_surface", "negative", f"Very rough surface ({_smoothness(edge)})"))

        slope = _incline(edge)
        if slope > p.steep_above_pct:
            out.append(EdgeReason("steep_slope", "negative", f"Steep slope ({slope:.1f}%)"))
        elif 0.0 < slope <= p.gentle_max_pct:
            out.append(EdgeReason("gentle_slope", "positive", f"Gentle slope ({slope:.1f}%)"))

        width = float(edge.width or 0.0)
        if width >= p.wide_min_m:
            out.append(EdgeReason("wide_path", "positive", f"Wide path ({width:.1f}m)"))
        return out


PROFILE_POLICIES: dict[Profile, ProfilePolicy] = {
    policy.profile: policy
    for policy in (DefaultPolicy(), WheelchairPolicy(), VisuallyImpairedPolicy(), EcoPolicy())
}

_unregistered = set(Profile) - set(PROFILE_POLICIES)
if _unregistered:
    raise RuntimeError(f"profiles without a cost policy: {sorted(p.value for p in _unregistered)}")


def policy_for(profile: Profile) -> ProfilePolicy:
    return PROFILE_POLICIES[profile]


def edge_cost(
    edge: GraphEdge,
    profile: Profile | str,
    context: RoutingContext = EMPTY_CONTEXT,
) -> float:
    """Weight A* minimises for ``edge``; ``math.inf`` means impassable."""
    if edge.closed:
        return math.inf
    return policy_for(normalize_profile(profile)).cost(edge, base_cost(edge), context)


def explain_edge(
    edge: GraphEdge,
    profile: Profile | str,
    context: RoutingContext = EMPTY_CONTEXT,
) -> list[EdgeReason]:
    return policy_for(normalize_profile(profile)).reasons(edge, context)
