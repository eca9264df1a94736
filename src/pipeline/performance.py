"""
Execution metrics for the agent pipeline.

Every executor pass produces a BatchExecutionResult; the monitor keeps
them and derives per-agent timing and reliability figures plus a
plain-text report.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from src.pipeline.dag_executor import BatchExecutionResult

logger = logging.getLogger(__name__)


@dataclass
class AgentStats:
    """Aggregated outcomes for one agent across recorded passes."""

    agent_id: str
    runs: int = 0
    successes: int = 0
    failures: int = 0
    skips: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        executed = self.runs - self.skips
        return self.total_ms / executed if executed else 0.0

    @property
    def success_rate(self) -> float:
        executed = self.runs - self.skips
        return self.successes / executed if executed else 0.0


@dataclass
class PipelineMetrics:
    passes: int = 0
    total_agent_runs: int = 0
    avg_pass_ms: float = 0.0
    avg_parallelization: float = 0.0
    failure_rate: float = 0.0
    skip_rate: float = 0.0
    agents: dict[str, AgentStats] = field(default_factory=dict)


class PerformanceMonitor:
    """Collects executor passes and summarizes them."""

    def __init__(self, max_history: int = 500) -> None:
        self.max_history = max_history
        self._history: list[BatchExecutionResult] = []

    def record(self, batch: BatchExecutionResult) -> None:
        self._history.append(batch)
        if len(self._history) > self.max_history:
            del self._history[: len(self._history) - self.max_history]
        for result in batch.results:
            if not result.success and not result.skipped:
                logger.debug("Agent %s failed: %s", result.agent_id, result.error)

    @property
    def history(self) -> list[BatchExecutionResult]:
        return list(self._history)

    def reset(self) -> None:
        self._history.clear()

    def calculate(self) -> PipelineMetrics:
        metrics = PipelineMetrics(passes=len(self._history))
        if not self._history:
            return metrics

        runs = failures = skips = 0
        for batch in self._history:
            for result in batch.results:
                stats = metrics.agents.setdefault(result.agent_id, AgentStats(result.agent_id))
                stats.runs += 1
                runs += 1
                if result.skipped:
                    stats.skips += 1
                    skips += 1
                    continue
                if result.success:
                    stats.successes += 1
                else:
                    stats.failures += 1
                    failures += 1
                stats.total_ms += result.elapsed_ms
                stats.max_ms = max(stats.max_ms, result.elapsed_ms)

        n = len(self._history)
        metrics.total_agent_runs = runs
        metrics.avg_pass_ms = sum(b.total_ms for b in self._history) / n
        metrics.avg_parallelization = sum(b.parallelization_ratio for b in self._history) / n
        metrics.failure_rate = failures / max(runs, 1)
        metrics.skip_rate = skips / max(runs, 1)
        return metrics

    def slowest_agent(self) -> Optional[AgentStats]:
        agents = self.calculate().agents.values()
        return max(agents, key=lambda s: s.avg_ms, default=None)

    def format_report(self, metrics: Optional[PipelineMetrics] = None) -> str:
        """Format metrics into a human-readable report."""
        metrics = metrics or self.calculate()
        lines = [
            "=" * 60,
            "PIPELINE PERFORMANCE REPORT",
            "=" * 60,
            "",
            f"  Passes recorded:        {metrics.passes}",
            f"  Agent runs:             {metrics.total_agent_runs}",
            f"  Avg pass duration:      {metrics.avg_pass_ms:.0f}ms",
            f"  Avg parallelization:    {metrics.avg_parallelization:.2f}x",
            f"  Failure rate:           {metrics.failure_rate:.1%}",
            f"  Skip rate:              {metrics.skip_rate:.1%}",
            "",
            "PER AGENT",
        ]
        for stats in sorted(metrics.agents.values(), key=lambda s: -s.avg_ms):
            lines.append(
                f"  {stats.agent_id:<10} runs={stats.runs:<4} "
                f"ok={stats.success_rate:.0%}  avg={stats.avg_ms:.0f}ms  max={stats.max_ms:.0f}ms"
            )
        lines.append("=" * 60)
        return "\n".join(lines)
