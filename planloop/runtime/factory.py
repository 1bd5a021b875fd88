"""
Orchestrator Factory

Factory and builder for assembling PlanExecuteReplan instances.
"""

from typing import Any

from planloop.config.settings import Settings, get_settings
from planloop.core.exceptions import ConfigurationError
from planloop.core.interfaces import Agent, CheckpointStoreProtocol
from planloop.observability.tracing import ConsoleSpanExporter, Tracer
from planloop.planning.checkpoints import CheckpointPolicy, build_checkpoint_store
from planloop.runtime.orchestrator import OrchestratorConfig, PlanExecuteReplan


def create_orchestrator(
    planner: Agent[Any, Any],
    executor: Agent[Any, Any],
    replanner: Agent[Any, Any],
    store: CheckpointStoreProtocol | None = None,
    settings: Settings | None = None,
) -> PlanExecuteReplan:
    """
    Create an orchestrator configured from settings.

    Args:
        planner: Planner agent
        executor: Executor agent
        replanner: Replanner agent
        store: Optional checkpoint store; built from settings when omitted
        settings: Optional settings; the cached settings when omitted

    Returns:
        Configured PlanExecuteReplan
    """
    settings = settings or get_settings()
    return PlanExecuteReplan(
        planner=planner,
        executor=executor,
        replanner=replanner,
        store=store if store is not None else build_checkpoint_store(settings.checkpoint),
        config=OrchestratorConfig.from_settings(settings.orchestrator),
        policy=CheckpointPolicy.from_settings(settings.checkpoint),
    )


def create_tracer(settings: Settings | None = None) -> Tracer | None:
    """A tracer for one run, or None when tracing is disabled."""
    settings = settings or get_settings()
    if not settings.observability.enable_tracing:
        return None
    return Tracer(
        service_name=settings.app_name,
        exporters=[ConsoleSpanExporter()],
        sample_rate=settings.observability.trace_sample_rate,
    )


class OrchestratorBuilder:
    """
    Builder pattern for PlanExecuteReplan.

        orchestrator = (
            OrchestratorBuilder()
            .with_planner(planner)
            .with_executor(executor)
            .with_replanner(replanner)
            .with_max_iterations(5)
            .build()
        )
    """

    def __init__(self):
        self._planner: Agent[Any, Any] | None = None
        self._executor: Agent[Any, Any] | None = None
        self._replanner: Agent[Any, Any] | None = None
        self._store: CheckpointStoreProtocol | None = None
        self._config = OrchestratorConfig()
        self._policy = CheckpointPolicy()

    def with_planner(self, planner: Agent[Any, Any]) -> "OrchestratorBuilder":
        self._planner = planner
        return self

    def with_executor(self, executor: Agent[Any, Any]) -> "OrchestratorBuilder":
        self._executor = executor
        return self

    def with_replanner(self, replanner: Agent[Any, Any]) -> "OrchestratorBuilder":
        self._replanner = replanner
        return self

    def with_store(self, store: CheckpointStoreProtocol) -> "OrchestratorBuilder":
        self._store = store
        return self

    def with_config(self, config: OrchestratorConfig) -> "OrchestratorBuilder":
        self._config = config
        return self

    def with_policy(self, policy: CheckpointPolicy) -> "OrchestratorBuilder":
        self._policy = policy
        return self

    def with_max_iterations(self, max_iterations: int) -> "OrchestratorBuilder":
        self._config.max_iterations = max_iterations
        return self

    def with_timeout(self, timeout_seconds: float) -> "OrchestratorBuilder":
        self._config.run_timeout_seconds = timeout_seconds
        return self

    def build(self) -> PlanExecuteReplan:
        """
        Build the orchestrator.

        Raises:
            ConfigurationError: If an agent role is missing
        """
        missing = [
            role
            for role, agent in (
                ("planner", self._planner),
                ("executor", self._executor),
                ("replanner", self._replanner),
            )
            if agent is None
        ]
        if missing:
            raise ConfigurationError(
                f"Missing agents: {', '.join(missing)}",
                context={"missing": missing},
            )

        return PlanExecuteReplan(
            planner=self._planner,
            executor=self._executor,
            replanner=self._replanner,
            store=self._store,
            config=self._config,
            policy=self._policy,
        )
