"""
Dependency-graph execution of analysis agents.

Agents are grouped into levels with Kahn's algorithm: every agent in a
level depends only on agents in earlier levels, so a level runs
concurrently and its slots are written back once the whole level is done.
Inside a level, higher-priority agents are started first.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

from src.agents.base_agent import BaseAgent
from src.errors import AgentRegistrationError, CyclicDependencyError, PipelineCancelledError
from src.schemas.analysis_schema import (
    AgentRole,
    AgentSlot,
    AnalysisState,
    Confidence,
    FailureKind,
)

logger = logging.getLogger(__name__)


@dataclass
class AgentNode:
    agent: BaseAgent
    depends_on: tuple[AgentRole, ...] = ()
    # Dependencies whose failure means this agent is skipped instead of run.
    required: frozenset[AgentRole] = frozenset()

    @property
    def role(self) -> AgentRole:
        return self.agent.role


class DependencyGraph:
    """Agents plus the dependency edges between them."""

    def __init__(self) -> None:
        self._nodes: dict[AgentRole, AgentNode] = {}

    def add(
        self,
        agent: BaseAgent,
        depends_on: Iterable[AgentRole] = (),
        required: Iterable[AgentRole] = (),
    ) -> None:
        """Register an agent.

        Raises:
            AgentRegistrationError: On a duplicate role, or a required
                dependency that is not also a dependency.
        """
        if agent.role in self._nodes:
            raise AgentRegistrationError(f"Agent '{agent.role.value}' is already in the graph")
        deps = tuple(depends_on)
        required_set = frozenset(required)
        if not required_set <= set(deps):
            extra = sorted(r.value for r in required_set - set(deps))
            raise AgentRegistrationError(
                f"Agent '{agent.role.value}' requires undeclared dependencies: {extra}"
            )
        self._nodes[agent.role] = AgentNode(agent, deps, required_set)

    def node(self, role: AgentRole) -> AgentNode:
        return self._nodes[role]

    @property
    def roles(self) -> list[AgentRole]:
        return list(self._nodes)

    def validate(self) -> None:
        for node in self._nodes.values():
            missing = [dep.value for dep in node.depends_on if dep not in self._nodes]
            if missing:
                raise AgentRegistrationError(
                    f"Agent '{node.role.value}' depends on unregistered agents: {missing}"
                )
        self.levels()

    def levels(self, subset: Optional[Iterable[AgentRole]] = None) -> list[list[AgentRole]]:
        """Group roles into execution levels.

        With ``subset``, only those roles are scheduled and only edges
        between them are considered.

        Raises:
            CyclicDependencyError: If the (sub)graph has a cycle.
        """
        selected = set(self._nodes) if subset is None else set(subset) & set(self._nodes)
        in_degree = {role: 0 for role in selected}
        dependents: dict[AgentRole, list[AgentRole]] = {role: [] for role in selected}
        for role in selected:
            for dep in self._nodes[role].depends_on:
                if dep in selected:
                    in_degree[role] += 1
                    dependents[dep].append(role)

        order = {role: index for index, role in enumerate(self._nodes)}
        ready = [role for role, degree in in_degree.items() if degree == 0]
        levels: list[list[AgentRole]] = []
        scheduled = 0
        while ready:
            level = sorted(ready, key=lambda r: (-self._nodes[r].agent.priority, order[r]))
            levels.append(level)
            scheduled += len(level)
            ready = []
            for role in level:
                for child in dependents[role]:
                    in_degree[child] -= 1
                    if in_degree[child] == 0:
                        ready.append(child)

        if scheduled != len(selected):
            stuck = sorted(role.value for role, degree in in_degree.items() if degree > 0)
            raise CyclicDependencyError(stuck)
        return levels

    def dependents_closure(self, roles: Iterable[AgentRole]) -> set[AgentRole]:
        """The given roles plus everything that transitively depends on them."""
        result = set(roles)
        changed = True
        while changed:
            changed = False
            for node in self._nodes.values():
                if node.role not in result and any(dep in result for dep in node.depends_on):
                    result.add(node.role)
                    changed = True
        return result


@dataclass
class AgentExecutionResult:
    agent_id: str
    level: int
    success: bool
    elapsed_ms: float = 0.0
    degraded: bool = False
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class BatchExecutionResult:
    """Timing and outcome of one pass over the graph."""

    results: list[AgentExecutionResult] = field(default_factory=list)
    execution_order: list[list[str]] = field(default_factory=list)
    total_ms: float = 0.0

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success and not r.skipped)

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def parallelization_ratio(self) -> float:
        """Summed agent time over wall time; 1.0 means fully sequential."""
        if self.total_ms <= 0:
            return 0.0
        return sum(r.elapsed_ms for r in self.results) / self.total_ms


class DAGExecutor:
    """Runs a dependency graph level by level against one analysis state."""

    def __init__(self, graph: DependencyGraph) -> None:
        graph.validate()
        self.graph = graph

    async def execute(
        self,
        state: AnalysisState,
        roles: Optional[Iterable[AgentRole]] = None,
        *,
        deadline: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchExecutionResult:
        """Run ``roles`` (default: all) in dependency order.

        ``deadline`` is an event-loop time. If it passes or ``cancel_event``
        is set, in-flight agents are cancelled and PipelineCancelledError is
        raised; slots written by completed levels are kept.
        """
        batch = BatchExecutionResult()
        started = time.perf_counter()
        levels = self.graph.levels(roles)

        for index, level in enumerate(levels):
            batch.execution_order.append([role.value for role in level])
            results = await self._run_level(index, level, state, deadline, cancel_event)
            batch.results.extend(results)

        batch.total_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Executed %d agent(s) in %d level(s): %d ok, %d failed, %d skipped (%.0fms)",
            len(batch.results), len(levels), batch.success_count,
            batch.failure_count, batch.skipped_count, batch.total_ms,
        )
        return batch

    async def _run_level(
        self,
        index: int,
        level: list[AgentRole],
        state: AnalysisState,
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> list[AgentExecutionResult]:
        results: list[AgentExecutionResult] = []
        runnable: list[AgentNode] = []

        for role in level:
            node = self.graph.node(role)
            if not node.agent.is_applicable(state):
                results.append(AgentExecutionResult(role.value, index, success=False, skipped=True))
                continue
            blocked = self._failed_requirement(node, state)
            if blocked is not None:
                reason = f"required dependency '{blocked.value}' unavailable"
                logger.warning("Skipping %s agent: %s", role.value, reason)
                self._store(state, role, AgentSlot(
                    record=node.agent.default_record(state),
                    confidence=Confidence.LOW,
                    failure=FailureKind.SKIPPED,
                    error=reason,
                    attempts=0,
                ))
                results.append(AgentExecutionResult(
                    role.value, index, success=False, degraded=True, skipped=True, error=reason,
                ))
                continue
            runnable.append(node)

        if not runnable:
            return results

        self._check_interrupted(state, deadline, cancel_event)
        tasks = [asyncio.ensure_future(self._timed(node, state)) for node in runnable]
        gathered = asyncio.gather(*tasks)
        waiters: set[asyncio.Future] = {gathered}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)
        timeout = None
        if deadline is not None:
            timeout = max(deadline - asyncio.get_running_loop().time(), 0.0)

        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

        if gathered not in done:
            gathered.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            reason = "cancelled" if cancel_event is not None and cancel_event.is_set() else "deadline exceeded"
            logger.warning("Level %d interrupted (%s)", index, reason)
            raise PipelineCancelledError(f"Analysis {reason} during level {index}", state)

        for node, (slot, elapsed_ms) in zip(runnable, gathered.result()):
            self._store(state, node.role, slot)
            results.append(AgentExecutionResult(
                agent_id=node.role.value,
                level=index,
                success=not slot.degraded,
                elapsed_ms=elapsed_ms,
                degraded=slot.degraded,
                error=slot.error,
            ))
        return results

    @staticmethod
    async def _timed(node: AgentNode, state: AnalysisState) -> tuple[AgentSlot, float]:
        started = time.perf_counter()
        slot = await node.agent.execute(state)
        return slot, (time.perf_counter() - started) * 1000

    @staticmethod
    def _failed_requirement(node: AgentNode, state: AnalysisState) -> Optional[AgentRole]:
        for dep in sorted(node.required, key=lambda r: r.value):
            slot = state.get_slot(dep)
            if slot is None or slot.degraded:
                return dep
        return None

    @staticmethod
    def _check_interrupted(
        state: AnalysisState,
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelledError("Analysis cancelled", state)
        if deadline is not None and asyncio.get_running_loop().time() >= deadline:
            raise PipelineCancelledError("Analysis deadline exceeded", state)

    @staticmethod
    def _store(state: AnalysisState, role: AgentRole, slot: AgentSlot) -> None:
        """Write a slot, unless it would replace good output with a failure."""
        previous = state.get_slot(role)
        if slot.degraded and previous is not None and not previous.degraded:
            logger.warning(
                "%s agent re-run failed (%s), keeping previous output", role.value, slot.error
            )
            return
        state.set_slot(role, slot)
