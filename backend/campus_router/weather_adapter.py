from __future__ import annotations

from typing import Protocol

from .cost_model import EMPTY_CONTEXT, RoutingContext
from .settings import settings


class WeatherProvider(Protocol):
    def current_context(self) -> RoutingContext: ...


class NullWeatherProvider:
    """No live weather feed: every request routes under an empty context."""

    def current_context(self) -> RoutingContext:
        return EMPTY_CONTEXT


class StaticWeatherProvider:
    def __init__(self, *, icy: bool = False, low_visibility: bool = False) -> None:
        self._context = RoutingContext(icy=bool(icy), low_visibility=bool(low_visibility))

    def current_context(self) -> RoutingContext:
        return self._context


def weather_provider_from_settings() -> WeatherProvider:
    if settings.weather_icy or settings.weather_low_visibility:
        return StaticWeatherProvider(icy=settings.weather_icy, low_visibility=settings.weather_low_visibility)
    return NullWeatherProvider()


def weather_summary(provider: WeatherProvider) -> dict[str, str | bool]:
    context = provider.current_context()
    return {
        "provider": type(provider).__name__,
        "icy": bool(context.icy),
        "low_visibility": bool(context.low_visibility),
    }
