"""
Test Configuration

Shared fixtures and test utilities.
"""

from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from planloop.config.settings import Settings
from planloop.observability import logging as planloop_logging
from planloop.observability.logging import BufferHandler, LogLevel, configure_logging
from planloop.planning.agents import ToolCallingExecutor
from planloop.planning.checkpoints import CheckpointPolicy, InMemoryCheckpointStore
from planloop.runtime.orchestrator import OrchestratorConfig, PlanExecuteReplan
from tests.fakes import FakeTools, ScriptedPlanner, ScriptedReplanner, ScriptedSelector


@pytest.fixture(autouse=True)
def log_buffer(monkeypatch) -> BufferHandler:
    """Route all log output into a buffer for the duration of a test."""
    monkeypatch.setattr(planloop_logging, "_root", None)
    buffer = BufferHandler(level=LogLevel.DEBUG)
    configure_logging(level=LogLevel.DEBUG, handlers=[buffer])
    return buffer


@pytest.fixture
def tools() -> FakeTools:
    return FakeTools()


@pytest.fixture
def store() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore()


@pytest.fixture
def make_orchestrator(
    tools: FakeTools,
    store: InMemoryCheckpointStore,
) -> Callable[..., PlanExecuteReplan]:
    """
    Build an orchestrator around scripted agents.

    Usage:
        orchestrator = make_orchestrator(["a", "b"], script={"b": [("approve", {...})]})
    """

    def factory(
        steps: list[str],
        decisions: list[Any] | None = None,
        script: dict[str, list[tuple[str, dict[str, Any]]]] | None = None,
        config: OrchestratorConfig | None = None,
        policy: CheckpointPolicy | None = None,
        planner: Any = None,
        replanner: Any = None,
    ) -> PlanExecuteReplan:
        return PlanExecuteReplan(
            planner=planner or ScriptedPlanner(steps),
            executor=ToolCallingExecutor(tools.registry, ScriptedSelector(script)),
            replanner=replanner or ScriptedReplanner(decisions),
            store=store,
            config=config,
            policy=policy,
        )

    return factory


@pytest.fixture
def settings() -> Settings:
    return Settings(app_name="Planloop Test", environment="development")


@pytest.fixture
async def app(make_orchestrator, tools, settings):
    """Create test application."""
    from planloop.api.app import create_app

    orchestrator = make_orchestrator(
        ["Check the weather", "Book the flight", "Summarize"],
        script={"Book the flight": [("approve", {"item": "flight CA123"})]},
    )
    yield create_app(orchestrator, settings=settings, tool_registry=tools.registry)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "e2e: End-to-end tests")
    config.addinivalue_line("markers", "slow: Slow tests")
