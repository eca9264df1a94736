"""
Orchestrator: runs one transcript through the six-agent pipeline.

    Context -> {Buyer, Seller} -> {Summary, CRM} -> Coach

After the first pass a refinement policy may send agents back for another
attempt; each re-run also re-runs everything downstream of it. The loop
is bounded by ``max_refinements``. The Buyer agent's PDCM record is then
mapped to the six-dimension score and the result assembled.
"""

import asyncio
from typing import Iterable, Optional, Union

from pydantic import ValidationError

from src.agents.registry import create_agent
from src.config import AppConfig, settings
from src.errors import PipelineCancelledError, PipelineError, TranscriptValidationError
from src.llm.client import LLMClient
from src.logging_context import get_analysis_logger, set_analysis_id
from src.pipeline.competitor import detect_competitor_keywords
from src.pipeline.dag_executor import DAGExecutor, DependencyGraph
from src.pipeline.performance import PerformanceMonitor
from src.pipeline.refinement import DefaultRefinementPolicy, RefinementPolicy
from src.pipeline.result_builder import build_result
from src.schemas.agent_outputs import PDCMScores
from src.schemas.analysis_schema import (
    AgentRole,
    AnalysisResult,
    AnalysisState,
    FailureKind,
)
from src.schemas.transcript_schema import ConversationMetadata, Transcript, TranscriptSegment
from src.scoring.score_mapper import ScoreMapper

logger = get_analysis_logger(__name__)

DEFAULT_DEPENDENCIES: dict[AgentRole, tuple[AgentRole, ...]] = {
    AgentRole.CONTEXT: (),
    AgentRole.BUYER: (AgentRole.CONTEXT,),
    AgentRole.SELLER: (AgentRole.CONTEXT,),
    AgentRole.SUMMARY: (AgentRole.BUYER, AgentRole.SELLER),
    AgentRole.CRM: (AgentRole.CONTEXT, AgentRole.BUYER),
    AgentRole.COACH: (
        AgentRole.CONTEXT, AgentRole.BUYER, AgentRole.SELLER, AgentRole.SUMMARY, AgentRole.CRM,
    ),
}

# Roles whose service failure aborts the analysis.
FATAL_ROLES = frozenset({AgentRole.CONTEXT})

TranscriptInput = Union[Transcript, list[TranscriptSegment], list[dict]]


def build_default_graph(
    client: LLMClient,
    config: AppConfig,
    required: Optional[dict[AgentRole, Iterable[AgentRole]]] = None,
) -> DependencyGraph:
    """Create the six registered agents and wire the standard dependencies.

    ``required`` marks edges as hard: if that dependency fails, the
    dependent is skipped instead of run on a default record.
    """
    required = required or {}
    graph = DependencyGraph()
    for role, depends_on in DEFAULT_DEPENDENCIES.items():
        agent = create_agent(
            role.value,
            client=client,
            model_config=config.model,
            pipeline_config=config.pipeline,
        )
        graph.add(agent, depends_on, required=required.get(role, ()))
    return graph


def validate_transcript(transcript: TranscriptInput) -> Transcript:
    """Coerce input to a Transcript, rejecting empty or malformed ones.

    Raises:
        TranscriptValidationError: Before any model call is made.
    """
    try:
        if isinstance(transcript, Transcript):
            result = Transcript.model_validate(transcript.model_dump())
        else:
            result = Transcript(segments=list(transcript))
    except ValidationError as exc:
        raise TranscriptValidationError(f"Malformed transcript: {exc}") from exc

    if not result.segments:
        raise TranscriptValidationError("Transcript has no segments")
    blank = [i for i, seg in enumerate(result.segments) if not seg.text.strip()]
    if blank:
        raise TranscriptValidationError(f"Transcript segments without text at positions {blank}")
    empty = [i for i, seg in enumerate(result.segments) if seg.end <= seg.start]
    if empty:
        raise TranscriptValidationError(f"Zero-length transcript segments at positions {empty}")
    for i, (prev, seg) in enumerate(zip(result.segments, result.segments[1:]), start=1):
        if seg.start < prev.start:
            raise TranscriptValidationError(
                f"Segment {i} starts at {seg.start}s, before segment {i - 1} at {prev.start}s"
            )
        if seg.start < prev.end:
            raise TranscriptValidationError(
                f"Segment {i} starts at {seg.start}s, overlapping segment {i - 1} ending at {prev.end}s"
            )
    return result


class Orchestrator:
    """Runs analyses. One instance can serve many concurrent ``run`` calls."""

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        config: Optional[AppConfig] = None,
        graph: Optional[DependencyGraph] = None,
        policy: Optional[RefinementPolicy] = None,
        score_mapper: Optional[ScoreMapper] = None,
        monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        self.config = config or settings
        if graph is None:
            if client is None:
                raise ValueError("Orchestrator needs either an LLM client or a dependency graph")
            graph = build_default_graph(client, self.config)
        self.graph = graph
        self.executor = DAGExecutor(graph)
        self.policy = policy or DefaultRefinementPolicy()
        self.score_mapper = score_mapper or ScoreMapper(self.config.scoring)
        self.monitor = monitor or PerformanceMonitor()

    async def run(
        self,
        transcript: TranscriptInput,
        metadata: ConversationMetadata,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AnalysisResult:
        """Analyze one conversation.

        Raises:
            TranscriptValidationError: Empty or malformed transcript.
            PipelineError: The Context agent's model calls failed.
            PipelineCancelledError: Cancelled or timed out before the
                first pass finished. Carries the partial state.
        """
        set_analysis_id(metadata.conversation_id)
        segments = validate_transcript(transcript)
        state = self._new_state(segments, metadata)
        deadline = None
        if timeout is not None:
            deadline = asyncio.get_running_loop().time() + timeout

        logger.info(
            "Analyzing conversation %s (%d segments, product=%s, competitor=%s)",
            metadata.conversation_id, len(segments.segments),
            metadata.product_line.value, state.has_competitor,
        )

        await self._first_pass(state, deadline, cancel_event)
        interrupted = await self._refine(state, deadline, cancel_event)

        buyer = state.buyer_data
        pdcm = buyer.pdcm_scores if buyer is not None else PDCMScores()
        qualification = self.score_mapper.map(pdcm)
        result = build_result(state, qualification, interrupted=interrupted)

        logger.info(
            "Conversation %s scored %d (%s), refinements=%d, degraded=%s",
            metadata.conversation_id, result.overall_score, qualification.status.value,
            state.refinement_count, result.degraded_agents or "none",
        )
        return result

    def _new_state(self, transcript: Transcript, metadata: ConversationMetadata) -> AnalysisState:
        keywords = detect_competitor_keywords(transcript, self.config.pipeline.competitor_keywords)
        return AnalysisState(
            transcript=transcript,
            metadata=metadata,
            max_refinements=self.config.pipeline.max_refinements,
            has_competitor=bool(keywords),
            competitor_keywords=keywords,
        )

    async def _first_pass(
        self,
        state: AnalysisState,
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        fatal = [role for role in self.graph.roles if role in FATAL_ROLES]
        rest = [role for role in self.graph.roles if role not in FATAL_ROLES]

        if fatal:
            batch = await self.executor.execute(
                state, fatal, deadline=deadline, cancel_event=cancel_event
            )
            self.monitor.record(batch)
            for role in fatal:
                slot = state.get_slot(role)
                if slot is not None and slot.failure == FailureKind.SERVICE:
                    raise PipelineError(f"{role.value} agent failed: {slot.error}")

        if rest:
            batch = await self.executor.execute(
                state, rest, deadline=deadline, cancel_event=cancel_event
            )
            self.monitor.record(batch)

    async def _refine(
        self,
        state: AnalysisState,
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> bool:
        """Run the bounded refinement loop. Returns True if it was interrupted."""
        try:
            while state.refinement_count < state.max_refinements:
                problems = self.policy.review(state)
                if not problems:
                    break
                state.refinement_count += 1
                state.refinement_feedback = dict(problems)
                rerun = self.graph.dependents_closure(problems)
                logger.info(
                    "Refinement %d/%d re-running: %s",
                    state.refinement_count, state.max_refinements,
                    ", ".join(sorted(role.value for role in rerun)),
                )
                batch = await self.executor.execute(
                    state, rerun, deadline=deadline, cancel_event=cancel_event
                )
                self.monitor.record(batch)
        except PipelineCancelledError as exc:
            logger.warning("Refinement stopped early, keeping best result so far: %s", exc)
            return True
        finally:
            state.refinement_feedback = {}
        return False
