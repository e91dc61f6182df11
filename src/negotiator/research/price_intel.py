"""Price intelligence: a baseline market price band for the requested service.

Per-km services (cabs) are priced from the route distance and duration with a
minimum fare, a long-trip time charge and a toll estimate.  Other services use
flat rate bands.  All rates come from ``config/service_rates.yaml``.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

import structlog
import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field

from negotiator.collaborators.directory import BusinessDirectory
from negotiator.domain.models import AgentEvent, PriceBand, PriceIntel, Requirements
from negotiator.domain.types import AgentName, EventType

logger = structlog.get_logger()

DEFAULT_RATES_PATH = Path(__file__).resolve().parents[3] / "config" / "service_rates.yaml"


class RateBand(BaseModel, frozen=True):
    """Low/mid/high unit rates for one service."""

    pricing: Literal["per_km", "flat"]
    low: float
    mid: float
    high: float
    unit: str = "km"


class PerKmRules(BaseModel, frozen=True):
    """Surcharges and rounding applied to per-km services."""

    minimum_fare: float = 150
    hourly_time_charge: float = 50
    long_trip_minutes: float = 60
    toll_per_50_km: float = 100
    toll_threshold_km: float = 30
    rounding_step: int = 50


class DefaultRoute(BaseModel, frozen=True):
    """Route assumed when the directory cannot estimate one."""

    distance_km: float = 10
    duration_min: float = 30


class ServiceRates(BaseModel, frozen=True):
    """The full rate card loaded from YAML."""

    default_service: str = "cab"
    per_km: PerKmRules = Field(default_factory=PerKmRules)
    default_route: DefaultRoute = Field(default_factory=DefaultRoute)
    services: dict[str, RateBand]

    def band_for(self, service: str) -> tuple[str, RateBand]:
        """Return ``(service_key, band)``, falling back to the default service."""
        key = service.strip().lower()
        if key in self.services:
            return key, self.services[key]
        return self.default_service, self.services[self.default_service]


@lru_cache
def load_service_rates(path: Path = DEFAULT_RATES_PATH) -> ServiceRates:
    """Load and validate the service rate card.

    Args:
        path: YAML file to read.  Defaults to ``config/service_rates.yaml``.

    Returns:
        The validated ``ServiceRates``.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    if not path.exists():
        raise FileNotFoundError(f"Service rates config not found: {path}")
    with path.open() as f:
        return ServiceRates.model_validate(yaml.safe_load(f))


def _round_to_step(value: float, step: int) -> int:
    steps = (Decimal(str(value)) / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(steps) * step


def baseline_price(
    distance_km: float,
    duration_min: float,
    service: str,
    rates: ServiceRates,
) -> tuple[PriceBand, list[str]]:
    """Compute the baseline price band for a trip or job.

    Args:
        distance_km: Route distance.
        duration_min: Route duration.
        service: Requested service kind.
        rates: Rate card.

    Returns:
        ``(band, factors)`` where *factors* explains what went into the band.
    """
    service_key, band = rates.band_for(service)
    factors: list[str] = []

    if band.pricing == "flat":
        factors.append(f"Standard service rates for {service_key} (per {band.unit})")
        return PriceBand(low=int(band.low), mid=int(band.mid), high=int(band.high)), factors

    rules = rates.per_km
    low = max(distance_km * band.low, rules.minimum_fare)
    mid = max(distance_km * band.mid, rules.minimum_fare)
    high = max(distance_km * band.high, rules.minimum_fare)
    factors.append(f"Base rate: {band.low:g}-{band.high:g}/km")

    if duration_min > rules.long_trip_minutes:
        time_charge = math.floor(duration_min / 60) * rules.hourly_time_charge
        mid += time_charge
        high += time_charge * 1.5
        factors.append(f"Long trip time charge: ~{time_charge:g}")

    if distance_km > rules.toll_threshold_km:
        tolls = math.floor(distance_km / 50) * rules.toll_per_50_km
        mid += tolls
        high += tolls * 1.5
        factors.append(f"Estimated tolls: ~{tolls:g}")

    factors.append("Night charges may apply (10pm-6am): +10-20%")
    step = rules.rounding_step
    return (
        PriceBand(
            low=_round_to_step(low, step),
            mid=_round_to_step(mid, step),
            high=_round_to_step(high, step),
        ),
        factors,
    )


async def gather_price_intel(
    requirements: Requirements,
    directory: BusinessDirectory,
    rates: ServiceRates,
) -> tuple[PriceIntel, list[AgentEvent]]:
    """Estimate the route and compute the baseline band for *requirements*.

    Route lookup failures degrade to the default route instead of failing.

    Returns:
        The ``PriceIntel`` summary and the events describing how it was built.
    """
    events: list[AgentEvent] = []
    route = None
    try:
        route = await directory.route_estimate(
            requirements.from_location, requirements.to_location
        )
    except Exception:
        logger.warning("route_estimate_failed", exc_info=True)

    if route is not None:
        distance, duration = route.distance_km, route.duration_min
        source, confidence = "directory_route", "high"
        events.append(
            AgentEvent(
                type=EventType.MESSAGE,
                agent=AgentName.RESEARCH,
                message=f"Route found: {distance:.1f} km, ~{round(duration)} minutes",
            )
        )
    else:
        distance = rates.default_route.distance_km
        duration = rates.default_route.duration_min
        source, confidence = "default_estimate", "low"
        events.append(
            AgentEvent(
                type=EventType.MESSAGE,
                agent=AgentName.RESEARCH,
                message="Could not fetch exact distance, using estimates...",
            )
        )

    band, factors = baseline_price(distance, duration, requirements.service or "cab", rates)
    intel = PriceIntel(
        estimated_distance_km=distance,
        estimated_duration_min=duration,
        baseline=band,
        factors=factors,
        data_source=source,
        confidence=confidence,
    )
    events.append(
        AgentEvent(
            type=EventType.MESSAGE,
            agent=AgentName.RESEARCH,
            message=f"Baseline price range: {band.low} - {band.high} (mid {band.mid})",
            data={"baseline": band.model_dump()},
        )
    )
    return intel, events
