"""
Integration Test Configuration

Provides fixtures and configuration for integration tests.
When running in CI environment (CI=true), slow tests are automatically skipped.
"""

import json
import os

import httpx
import pytest


@pytest.fixture
def is_ci_environment() -> bool:
    """
    Detect if tests are running in CI environment.

    Returns:
        True if CI environment variable is set to 'true'
    """
    return os.getenv("CI", "").lower() == "true"


@pytest.fixture(autouse=True)
def skip_slow_tests_in_ci(request, is_ci_environment):
    """
    Automatically skip slow integration tests when running in CI.

    Slow tests (marked with @pytest.mark.slow) wait on real debounce timers.
    """
    if is_ci_environment and request.node.get_closest_marker("slow"):
        pytest.skip("Skipping slow test in CI environment")


# Opening words of each stage prompt (lowercased)
PROMPT_OPENINGS = {
    "create a detailed, personalized career roadmap": "roadmap",
    "provide current market analysis": "market-insights",
    "create a personalized action plan": "action-plan",
    "create a comprehensive learning plan": "learning-plan",
    "generate comprehensive interview questions": "interview-questions",
    "create a networking strategy": "networking-strategy",
}


@pytest.fixture
def content_service_transport(stage_responses):
    """
    httpx MockTransport answering like the content service.

    Picks the canned stage response from the prompt's opening words and wraps
    it in the content-blocks envelope. Request bodies are kept on
    ``transport.requests``.
    """
    requests: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        prompt = body["messages"][0]["content"].lower()
        stage = next(
            (s for opening, s in PROMPT_OPENINGS.items() if prompt.startswith(opening)),
            "recommendations",
        )
        return httpx.Response(
            200, json={"content": [{"type": "text", "text": stage_responses[stage]}]}
        )

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport
