"""Shared pytest fixtures for the vendor negotiator test suite.

The fakes implement the collaborator protocols (directory, telephony,
reasoning) with scripted, in-memory behaviour so the workflow can run end to
end without network access.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterator
from datetime import timedelta
from typing import Any

import pytest

from negotiator.collaborators.call_history import CallHistoryStore, init_call_history_db
from negotiator.config import Settings
from negotiator.domain.errors import CollaboratorError
from negotiator.domain.models import (
    Business,
    CallStatusReport,
    GeoPoint,
    NegotiationProgress,
    PlaceReviews,
    PlacedCall,
    PriceBand,
    PriceIntel,
    PriceRange,
    RankedVendor,
    Requirements,
    ResearchResult,
    RouteEstimate,
    VendorRanking,
    WorkflowState,
    utc_now,
)
from negotiator.domain.types import WorkflowStage
from negotiator.orchestrator import Orchestrator
from negotiator.research.price_intel import ServiceRates, load_service_rates
from negotiator.sessions.store import SessionStore
from negotiator.workflow.engine import NegotiationWorkflow, WorkflowServices

_RUPEES = re.compile(r"(\d+) rupees")


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeDirectory:
    """In-memory ``BusinessDirectory``."""

    def __init__(
        self,
        businesses: list[Business] | None = None,
        *,
        point: GeoPoint | None = GeoPoint(lat=12.97, lng=77.75),
        reviews: dict[str, PlaceReviews] | None = None,
        route: RouteEstimate | None = RouteEstimate(distance_km=20, duration_min=40),
        search_error: Exception | None = None,
        reviews_error: Exception | None = None,
    ) -> None:
        self.businesses = list(businesses or [])
        self.point = point
        self.reviews = reviews or {}
        self.route = route
        self.search_error = search_error
        self.reviews_error = reviews_error
        self.searches: list[str] = []

    async def search(self, service: str, location: GeoPoint, radius_km: float) -> list[Business]:
        self.searches.append(service)
        if self.search_error is not None:
            raise self.search_error
        return list(self.businesses)

    async def geocode(self, address: str) -> GeoPoint | None:
        return self.point

    async def place_reviews(self, business: Business) -> PlaceReviews | None:
        if self.reviews_error is not None:
            raise self.reviews_error
        return self.reviews.get(business.id)

    async def route_estimate(self, origin: str, destination: str) -> RouteEstimate | None:
        return self.route


def ended(transcript: str, **overrides: Any) -> CallStatusReport:
    """A finished call report with *transcript*."""
    started = utc_now()
    fields: dict[str, Any] = {
        "status": "ended",
        "transcript": transcript,
        "started_at": started,
        "ended_at": started + timedelta(seconds=95),
        "ended_reason": "assistant-ended-call",
    }
    fields.update(overrides)
    return CallStatusReport(**fields)


class FakeCaller:
    """Scripted ``OutboundCaller``.

    Every placed call finishes with the next scripted item.  An exception in
    the script is raised from ``place_call`` instead; ``status_error`` is
    raised from every status poll.
    """

    def __init__(self, script: list[CallStatusReport | Exception] | None = None) -> None:
        self.script = list(script or [])
        self.placed: list[dict[str, Any]] = []
        self._reports: dict[str, CallStatusReport] = {}
        self.on_place: Any = None
        self.status_error: Exception | None = None

    async def place_call(
        self,
        business: Business,
        requirements: Requirements,
        benchmark: float | None = None,
        *,
        purpose: str = "negotiation",
    ) -> PlacedCall:
        if self.on_place is not None:
            self.on_place(business)
        self.placed.append(
            {
                "vendor": business.name,
                "purpose": purpose,
                "benchmark": benchmark,
                "requirements": requirements,
            }
        )
        outcome = self.script.pop(0) if self.script else ended("")
        if isinstance(outcome, Exception):
            raise outcome
        call_id = f"call-{len(self.placed)}"
        self._reports[call_id] = outcome
        return PlacedCall(call_id=call_id, status="queued")

    async def get_call_status(self, call_id: str) -> CallStatusReport:
        if self.status_error is not None:
            raise self.status_error
        return self._reports[call_id]

    @property
    def vendors_called(self) -> list[str]:
        return [p["vendor"] for p in self.placed]


class FakeReasoning:
    """Deterministic ``ReasoningService``.

    Quote prompts are answered with the first ``<n> rupees`` in the transcript,
    verification prompts confirm the deal.  Anything else gets the first reply
    in *replies* whose key occurs in the prompt, or an unstructured answer.
    """

    def __init__(self, replies: dict[str, str] | None = None, *, fail: bool = False) -> None:
        self.replies = replies or {}
        self.fail = fail
        self.prompts: list[str] = []

    async def invoke(self, prompt: str, *, max_tokens: int = 1024) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise CollaboratorError("anthropic", "service unavailable")
        for marker, reply in self.replies.items():
            if marker in prompt:
                return reply
        if prompt.startswith("Extract the quoted price"):
            transcript = prompt.split("Transcript:", 1)[-1]
            match = _RUPEES.search(transcript)
            return json.dumps({"price": int(match.group(1)) if match else None, "notes": ""})
        if prompt.startswith("Analyze this verification"):
            return json.dumps({"verified": True, "notes": "Vendor confirmed the booking"})
        return "I could not come up with anything useful."


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_business(
    business_id: str,
    name: str,
    *,
    distance_km: float = 2.0,
    rating: float = 4.0,
    review_count: int = 50,
) -> Business:
    return Business(
        id=business_id,
        name=name,
        phone="080 4123 4567",
        address=f"{name}, Bengaluru",
        rating=rating,
        review_count=review_count,
        distance_km=distance_km,
        place_id=business_id,
    )


def ranked_state(
    businesses: list[Business],
    *,
    requirements: Requirements | None = None,
    baseline: PriceBand | None = PriceBand(low=250, mid=300, high=400),
) -> WorkflowState:
    """A state at CONTACT with *businesses* ranked in the given order."""
    intel = (
        PriceIntel(estimated_distance_km=20, estimated_duration_min=40, baseline=baseline)
        if baseline is not None
        else None
    )
    ranking = VendorRanking(
        ranked_vendors=[
            RankedVendor(
                business=b,
                composite_score=80 - i,
                rank=i + 1,
                negotiation_strategy="Ask for their best price.",
                estimated_price_range=PriceRange(low=250, high=300),
            )
            for i, b in enumerate(businesses)
        ]
    )
    return WorkflowState(
        session_id="s-contact",
        stage=WorkflowStage.CONTACT,
        requirements=requirements or CAB_REQUIREMENTS,
        businesses=businesses,
        research=ResearchResult(price_intel=intel, vendor_ranking=ranking),
        negotiation=NegotiationProgress(),
    )


CAB_REQUIREMENTS = Requirements.model_validate(
    {"service": "cab", "from": "Whitefield", "to": "Airport", "date": "tomorrow"}
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def anyio_backend() -> str:
    """Run ``@pytest.mark.anyio`` tests on asyncio, the loop the service uses."""
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    """Settings with instant call polling and a three-vendor cap."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        call_poll_interval_seconds=0,
        call_poll_max_attempts=3,
        max_vendors_to_call=3,
    )


@pytest.fixture
def rates() -> ServiceRates:
    return load_service_rates()


@pytest.fixture
def alpha() -> Business:
    return make_business("p-alpha", "Alpha Cabs", distance_km=1.0, rating=4.8, review_count=200)


@pytest.fixture
def beta() -> Business:
    return make_business("p-beta", "Beta Travels", distance_km=12.0, rating=3.0, review_count=5)


@pytest.fixture
def directory(alpha: Business, beta: Business) -> FakeDirectory:
    return FakeDirectory([alpha, beta])


@pytest.fixture
def caller() -> FakeCaller:
    return FakeCaller()


@pytest.fixture
def reasoning() -> FakeReasoning:
    return FakeReasoning()


@pytest.fixture
def call_history() -> Iterator[CallHistoryStore]:
    conn = init_call_history_db(":memory:")
    yield CallHistoryStore(conn)
    conn.close()


@pytest.fixture
def workflow(
    directory: FakeDirectory,
    caller: FakeCaller,
    reasoning: FakeReasoning,
    call_history: CallHistoryStore,
    rates: ServiceRates,
    settings: Settings,
) -> NegotiationWorkflow:
    return NegotiationWorkflow(
        WorkflowServices(
            directory=directory,
            caller=caller,
            reasoning=reasoning,
            call_history=call_history,
            rates=rates,
            settings=settings,
        )
    )


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def orchestrator(store: SessionStore, workflow: NegotiationWorkflow) -> Orchestrator:
    return Orchestrator(store, workflow)


@pytest.fixture
def cab_requirements() -> dict[str, Any]:
    return {"service": "cab", "from": "Whitefield", "to": "Airport", "date": "tomorrow"}


@pytest.fixture
def call_report() -> Callable[..., CallStatusReport]:
    """Builder for finished call reports: ``call_report(transcript, **overrides)``."""
    return ended


@pytest.fixture
def business_factory() -> Callable[..., Business]:
    return make_business


@pytest.fixture
def contact_state() -> Callable[..., WorkflowState]:
    """Builder for a state at CONTACT: ``contact_state(businesses, **options)``."""
    return ranked_state
