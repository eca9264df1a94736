"""Tests for dependency-graph scheduling and level execution."""

import asyncio

import pytest

from src.agents import BuyerAgent, CoachAgent, ContextAgent, CRMAgent, SellerAgent, SummaryAgent
from src.errors import AgentRegistrationError, CyclicDependencyError, PipelineCancelledError
from src.errors import LLMServiceError
from src.pipeline.dag_executor import DAGExecutor, DependencyGraph
from src.pipeline.orchestrator import build_default_graph
from src.pipeline.performance import PerformanceMonitor
from src.schemas.analysis_schema import AgentRole, AnalysisState, FailureKind
from tests.conftest import FakeLLMClient, good_replies, make_config, make_metadata, make_transcript


def make_state() -> AnalysisState:
    return AnalysisState(transcript=make_transcript(), metadata=make_metadata())


def default_graph(client, required=None) -> DependencyGraph:
    return build_default_graph(client, make_config(), required=required)


class TestDependencyGraph:
    def setup_method(self):
        self.client = FakeLLMClient()

    def test_default_levels(self):
        levels = default_graph(self.client).levels()
        assert levels == [
            [AgentRole.CONTEXT],
            [AgentRole.BUYER, AgentRole.SELLER],
            [AgentRole.SUMMARY, AgentRole.CRM],
            [AgentRole.COACH],
        ]

    def test_priority_orders_within_level(self):
        graph = DependencyGraph()
        graph.add(CoachAgent(self.client))
        graph.add(SellerAgent(self.client))
        graph.add(BuyerAgent(self.client))
        assert graph.levels() == [[AgentRole.BUYER, AgentRole.SELLER, AgentRole.COACH]]

    def test_subset_ignores_edges_outside_it(self):
        graph = default_graph(self.client)
        levels = graph.levels([AgentRole.BUYER, AgentRole.SUMMARY, AgentRole.COACH])
        assert levels == [[AgentRole.BUYER], [AgentRole.SUMMARY], [AgentRole.COACH]]

    def test_cycle_detected(self):
        graph = DependencyGraph()
        graph.add(ContextAgent(self.client), depends_on=[AgentRole.COACH])
        graph.add(BuyerAgent(self.client), depends_on=[AgentRole.CONTEXT])
        graph.add(CoachAgent(self.client), depends_on=[AgentRole.BUYER])
        with pytest.raises(CyclicDependencyError) as exc_info:
            graph.levels()
        assert set(exc_info.value.agent_ids) == {"buyer", "coach", "context"}

    def test_executor_rejects_cyclic_graph(self):
        graph = DependencyGraph()
        graph.add(ContextAgent(self.client), depends_on=[AgentRole.BUYER])
        graph.add(BuyerAgent(self.client), depends_on=[AgentRole.CONTEXT])
        with pytest.raises(CyclicDependencyError):
            DAGExecutor(graph)

    def test_duplicate_role_rejected(self):
        graph = DependencyGraph()
        graph.add(ContextAgent(self.client))
        with pytest.raises(AgentRegistrationError, match="already"):
            graph.add(ContextAgent(self.client))

    def test_unknown_dependency_rejected(self):
        graph = DependencyGraph()
        graph.add(BuyerAgent(self.client), depends_on=[AgentRole.CONTEXT])
        with pytest.raises(AgentRegistrationError, match="unregistered"):
            graph.validate()

    def test_required_must_be_declared_dependency(self):
        graph = DependencyGraph()
        with pytest.raises(AgentRegistrationError, match="undeclared"):
            graph.add(BuyerAgent(self.client), required=[AgentRole.CONTEXT])

    def test_dependents_closure(self):
        graph = default_graph(self.client)
        assert graph.dependents_closure([AgentRole.BUYER]) == {
            AgentRole.BUYER, AgentRole.SUMMARY, AgentRole.CRM, AgentRole.COACH,
        }
        assert graph.dependents_closure([AgentRole.SELLER]) == {
            AgentRole.SELLER, AgentRole.SUMMARY, AgentRole.COACH,
        }
        assert graph.dependents_closure([AgentRole.COACH]) == {AgentRole.COACH}


class TestDAGExecutor:
    @pytest.mark.asyncio
    async def test_full_pass_fills_every_slot(self):
        client = FakeLLMClient()
        executor = DAGExecutor(default_graph(client))
        state = make_state()

        batch = await executor.execute(state)

        assert set(state.slots) == set(AgentRole)
        assert batch.success_count == 6
        assert batch.failure_count == 0
        assert batch.execution_order == [["context"], ["buyer", "seller"], ["summary", "crm"], ["coach"]]
        assert client.calls[0] == "context"
        assert client.calls[-1] == "coach"

    @pytest.mark.asyncio
    async def test_level_runs_concurrently(self):
        client = FakeLLMClient(delay=0.05)
        executor = DAGExecutor(default_graph(client))
        await executor.execute(make_state())
        assert client.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_dependents_see_upstream_output(self):
        client = FakeLLMClient()
        await DAGExecutor(default_graph(client)).execute(make_state())
        _, buyer_prompt = client.prompts["buyer"][0]
        assert "Checkout is too slow at peak hours" in buyer_prompt

    @pytest.mark.asyncio
    async def test_soft_dependency_failure_still_runs_dependent(self):
        replies = good_replies()
        replies["buyer"] = LLMServiceError("bad request")
        client = FakeLLMClient(replies)
        state = make_state()

        batch = await DAGExecutor(default_graph(client)).execute(state)

        assert state.get_slot(AgentRole.BUYER).failure == FailureKind.SERVICE
        assert client.count("summary") == 1
        assert not state.get_slot(AgentRole.SUMMARY).degraded
        assert batch.failure_count == 1

    @pytest.mark.asyncio
    async def test_required_dependency_failure_skips_dependent(self):
        replies = good_replies()
        replies["buyer"] = LLMServiceError("bad request")
        client = FakeLLMClient(replies)
        graph = default_graph(client, required={AgentRole.CRM: [AgentRole.BUYER]})
        state = make_state()

        batch = await DAGExecutor(graph).execute(state)

        crm_slot = state.get_slot(AgentRole.CRM)
        assert crm_slot.failure == FailureKind.SKIPPED
        assert "buyer" in crm_slot.error
        assert client.count("crm") == 0
        assert batch.skipped_count == 1

    @pytest.mark.asyncio
    async def test_rerun_failure_keeps_previous_output(self):
        replies = good_replies()
        replies["seller"] = [replies["seller"], LLMServiceError("bad request")]
        client = FakeLLMClient(replies)
        executor = DAGExecutor(default_graph(client))
        state = make_state()

        await executor.execute(state)
        await executor.execute(state, [AgentRole.SELLER])

        slot = state.get_slot(AgentRole.SELLER)
        assert not slot.degraded
        assert slot.record.progress_score == 75

    @pytest.mark.asyncio
    async def test_cancel_event_stops_in_flight_level(self):
        client = FakeLLMClient(delay=0.2)
        executor = DAGExecutor(default_graph(client))
        state = make_state()
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        with pytest.raises(PipelineCancelledError, match="cancelled") as exc_info:
            await executor.execute(state, cancel_event=cancel)

        assert exc_info.value.state is state
        assert state.slots == {}
        assert client.calls == ["context"]

    @pytest.mark.asyncio
    async def test_deadline_keeps_completed_levels(self):
        client = FakeLLMClient(delay=0.05)
        executor = DAGExecutor(default_graph(client))
        state = make_state()
        deadline = asyncio.get_running_loop().time() + 0.08

        with pytest.raises(PipelineCancelledError, match="deadline"):
            await executor.execute(state, deadline=deadline)

        assert AgentRole.CONTEXT in state.slots
        assert AgentRole.COACH not in state.slots

    @pytest.mark.asyncio
    async def test_already_cancelled_makes_no_calls(self):
        client = FakeLLMClient()
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(PipelineCancelledError):
            await DAGExecutor(default_graph(client)).execute(make_state(), cancel_event=cancel)
        assert client.calls == []


class TestPerformanceMonitor:
    @pytest.mark.asyncio
    async def test_records_and_reports(self):
        replies = good_replies()
        replies["crm"] = LLMServiceError("bad request")
        executor = DAGExecutor(default_graph(FakeLLMClient(replies)))
        monitor = PerformanceMonitor()

        monitor.record(await executor.execute(make_state()))
        monitor.record(await executor.execute(make_state()))
        metrics = monitor.calculate()

        assert metrics.passes == 2
        assert metrics.total_agent_runs == 12
        assert metrics.agents["crm"].success_rate == 0.0
        assert metrics.agents["context"].success_rate == 1.0
        assert metrics.failure_rate == pytest.approx(2 / 12)
        report = monitor.format_report()
        assert "PIPELINE PERFORMANCE REPORT" in report
        assert "crm" in report

    def test_empty_monitor(self):
        monitor = PerformanceMonitor()
        assert monitor.calculate().passes == 0
        assert monitor.slowest_agent() is None

    def test_history_is_bounded(self):
        from src.pipeline.dag_executor import BatchExecutionResult

        monitor = PerformanceMonitor(max_history=3)
        for _ in range(5):
            monitor.record(BatchExecutionResult())
        assert len(monitor.history) == 3
