"""
Shared fixtures: a scripted content client, a recording cache store and a
coordinator factory wired to in-memory storage.
"""

import asyncio
import json
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from src.coordinator import GenerationCoordinator
from src.models.profile import UserProfile
from src.utils.cache_store import CacheStore, Namespace
from src.utils.debounce import DebouncedTimer
from src.utils.storage_backend import InMemoryStorage

RECOMMENDATIONS = [
    {
        "title": "Data Scientist",
        "match": 92,
        "description": "Apply statistics and ML to business problems",
        "keySkills": ["Python", "Statistics", "SQL"],
        "salaryRange": "$110k-$150k",
    },
    {"title": "ML Engineer", "match": 85, "keySkills": ["Python", "MLOps"]},
    {"title": "Data Analyst", "match": 80, "keySkills": ["SQL", "Excel"]},
    {"title": "Research Scientist", "match": 74, "keySkills": ["Modeling"]},
    {"title": "Quant Analyst", "match": 70, "keySkills": ["Math"]},
]

STAGE_RESPONSES = {
    "recommendations": json.dumps(RECOMMENDATIONS),
    "roadmap": json.dumps({"careerTitle": "Data Scientist", "phases": [{"title": "Foundations"}]}),
    "market-insights": json.dumps({"summary": "Growing demand", "trends": []}),
    "action-plan": json.dumps([{"title": "Finish a Python course", "priority": "high"}]),
    "learning-plan": 'Here is your plan: {"courses": [{"name": "Intro to ML"}]} Enjoy!',
    "interview-questions": json.dumps({"technical": [{"question": "What is overfitting?"}]}),
    "networking-strategy": json.dumps([{"strategy": "Join a local data meetup"}]),
}

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class ScriptedContentClient:
    """Returns canned text per stage and records every call.

    A response that is an Exception instance is raised instead of returned.
    Set ``gate`` to an asyncio.Event to hold calls until it is set.
    """

    def __init__(self, responses: Optional[dict[str, Any]] = None):
        self.responses = dict(STAGE_RESPONSES if responses is None else responses)
        self.calls: list[tuple[str, str, int]] = []
        self.gate: Optional[asyncio.Event] = None

    def call_count(self, stage_id: str) -> int:
        return sum(1 for call in self.calls if call[0] == stage_id)

    async def send(
        self,
        stage_id: str,
        prompt_text: str,
        output_budget: int,
        correlation_id: Optional[str] = None,
    ) -> str:
        self.calls.append((stage_id, prompt_text, output_budget))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

        response = self.responses[stage_id]
        if isinstance(response, Exception):
            raise response
        return response


class RecordingCacheStore(CacheStore):
    """CacheStore that counts writes per namespace."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.puts: Counter = Counter()

    def put(self, namespace: Namespace, owner_id: str, payload: Any) -> bool:
        self.puts[Namespace(namespace)] += 1
        return super().put(namespace, owner_id, payload)


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile.from_intake(
        {
            "fullName": "Dana Reyes",
            "experienceLevel": "Mid-level",
            "studyField": "Physics",
            "educationLevel": "Master's",
            "currentRole": "Lab Technician",
            "techInterests": "data science, machine learning",
            "transitionTimeline": "6-12 months",
            "timeCommitment": "10 hours/week",
        }
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def cache_store(storage) -> RecordingCacheStore:
    return RecordingCacheStore(storage, clock=lambda: FIXED_NOW)


@pytest.fixture
def content_client() -> ScriptedContentClient:
    return ScriptedContentClient()


@pytest.fixture
def make_coordinator(cache_store, content_client):
    """Build coordinators sharing one store; autosave waits for an explicit flush."""

    def _make(
        owner_id: str = "user-1",
        client: Optional[ScriptedContentClient] = None,
        store: Optional[CacheStore] = None,
        autosave_timer: Optional[DebouncedTimer] = None,
    ) -> GenerationCoordinator:
        return GenerationCoordinator(
            owner_id=owner_id,
            client=client or content_client,
            cache_store=store or cache_store,
            autosave_timer=autosave_timer or DebouncedTimer(3600),
            clock=lambda: FIXED_NOW,
        )

    return _make


@pytest.fixture
def recommendations() -> list[dict[str, Any]]:
    return [dict(item) for item in RECOMMENDATIONS]


@pytest.fixture
def make_client():
    """Build scripted clients with per-stage overrides of the canned responses."""

    def _make(**overrides: Any) -> ScriptedContentClient:
        responses = dict(STAGE_RESPONSES)
        responses.update({key.replace("_", "-"): value for key, value in overrides.items()})
        return ScriptedContentClient(responses)

    return _make


@pytest.fixture
def stage_responses() -> dict[str, str]:
    return dict(STAGE_RESPONSES)
