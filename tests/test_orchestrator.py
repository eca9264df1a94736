"""End-to-end pipeline tests with a scripted model."""

import asyncio

import pytest

from src.errors import (
    LLMServiceError,
    PipelineCancelledError,
    PipelineError,
    TranscriptValidationError,
    TransientLLMError,
)
from src.pipeline.competitor import detect_competitor_keywords
from src.pipeline.orchestrator import Orchestrator, validate_transcript
from src.schemas.analysis_schema import QualificationStatus, Severity
from tests.conftest import (
    GOOD_PAYLOADS,
    FakeLLMClient,
    as_reply,
    good_replies,
    make_config,
    make_metadata,
    make_segment,
    make_transcript,
)

RERUN_CLOSURE_OF_BUYER = ("buyer", "summary", "crm", "coach")


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_single_pass_when_output_is_good(self, fake_client, config, transcript, metadata):
        result = await Orchestrator(fake_client, config).run(transcript, metadata)

        assert len(fake_client.calls) == 6
        assert result.refinement_count == 0
        assert result.low_confidence is False
        assert result.degraded_agents == []
        assert result.interrupted is False
        assert result.conversation_id == "conv-001"
        assert result.opportunity_id == "opp-001"

    @pytest.mark.asyncio
    async def test_score_from_buyer_pdcm(self, fake_client, config, transcript, metadata):
        result = await Orchestrator(fake_client, config).run(transcript, metadata)

        # pain 80, decision 70, champion 80, metrics 60, authority confirmed
        # 0.15*60 + 0.20*80 + 0.15*80 + 0.15*70 + 0.20*80 + 0.15*80 = 75.5
        assert result.overall_score == 76
        assert result.qualification.status == QualificationStatus.HIGH
        assert result.qualification.dimensions.identify_pain.score == 4
        assert result.qualification.dimensions.economic_buyer.score == 4

    @pytest.mark.asyncio
    async def test_result_fields_from_agents(self, fake_client, config, transcript, metadata):
        result = await Orchestrator(fake_client, config).run(transcript, metadata)

        assert result.sms_text == GOOD_PAYLOADS["summary"]["sms_text"]
        assert result.coaching_notes == GOOD_PAYLOADS["coach"]["coaching_notes"]
        assert result.crm.stage_name == "Negotiation"
        assert "Main pain: Slow checkout" in result.key_findings
        assert "Decision maker: Owner (confirmed)" in result.key_findings
        assert "Sign this month" in result.key_findings
        assert result.next_steps[0].action == "Send the contract"
        assert result.next_steps[0].priority == "High"
        assert set(result.agent_outputs) == {"context", "buyer", "seller", "summary", "crm", "coach"}

    @pytest.mark.asyncio
    async def test_accepts_segment_dicts(self, fake_client, config, metadata):
        segments = [
            {"speaker": "Sales", "text": "Hi, thanks for your time.", "start": 0, "end": 3},
            {"speaker": "Owner", "text": "Checkout is slow.", "start": 3, "end": 6},
        ]
        result = await Orchestrator(fake_client, config).run(segments, metadata)
        assert result.overall_score == 76


class TestInputValidation:
    @pytest.mark.asyncio
    async def test_empty_transcript_rejected_before_any_call(self, fake_client, config, metadata):
        with pytest.raises(TranscriptValidationError, match="no segments"):
            await Orchestrator(fake_client, config).run([], metadata)
        assert fake_client.calls == []

    def test_blank_segment_text_rejected(self):
        with pytest.raises(TranscriptValidationError, match="without text"):
            validate_transcript([{"text": "  ", "start": 0, "end": 1}])

    def test_inverted_segment_rejected(self):
        with pytest.raises(TranscriptValidationError, match="Malformed"):
            validate_transcript([{"text": "hello", "start": 5, "end": 1}])

    def test_zero_length_segment_rejected(self):
        with pytest.raises(TranscriptValidationError, match="Zero-length"):
            validate_transcript([{"text": "hello", "start": 2, "end": 2}])

    def test_out_of_order_segments_rejected(self):
        with pytest.raises(TranscriptValidationError, match="before segment 0"):
            validate_transcript([
                {"text": "later", "start": 50, "end": 55},
                {"text": "earlier", "start": 0, "end": 5},
            ])

    def test_overlapping_segments_rejected(self):
        with pytest.raises(TranscriptValidationError, match="overlapping"):
            validate_transcript([
                {"text": "first", "start": 0, "end": 6},
                {"text": "second", "start": 4, "end": 9},
            ])

    def test_back_to_back_segments_accepted(self):
        result = validate_transcript([
            {"text": "first", "start": 0, "end": 3},
            {"text": "second", "start": 3, "end": 6},
        ])
        assert [seg.start for seg in result.segments] == [0, 3]

    @pytest.mark.asyncio
    async def test_out_of_order_transcript_never_reaches_model(self, fake_client, config, metadata):
        with pytest.raises(TranscriptValidationError):
            await Orchestrator(fake_client, config).run(
                [make_segment("later", start=50), make_segment("earlier", start=0)], metadata
            )
        assert fake_client.calls == []

    def test_needs_client_or_graph(self):
        with pytest.raises(ValueError):
            Orchestrator(config=make_config())


class TestRefinement:
    @pytest.mark.asyncio
    async def test_refinement_bounded_by_max(self, config, transcript, metadata):
        replies = good_replies()
        replies["buyer"] = as_reply({"pdcm_scores": {}})
        client = FakeLLMClient(replies)

        result = await Orchestrator(client, config).run(transcript, metadata)

        assert result.refinement_count == 2
        for role in RERUN_CLOSURE_OF_BUYER:
            assert client.count(role) == 3
        assert client.count("context") == 1
        assert client.count("seller") == 1

    @pytest.mark.asyncio
    async def test_zero_refinements_disables_loop(self, transcript, metadata):
        replies = good_replies()
        replies["buyer"] = as_reply({"pdcm_scores": {}})
        client = FakeLLMClient(replies)

        result = await Orchestrator(client, make_config(max_refinements=0)).run(transcript, metadata)

        assert result.refinement_count == 0
        assert len(client.calls) == 6

    @pytest.mark.asyncio
    async def test_refinement_stops_once_output_improves(self, config, transcript, metadata):
        replies = good_replies()
        replies["buyer"] = [as_reply({"pdcm_scores": {}}), replies["buyer"]]
        client = FakeLLMClient(replies)

        result = await Orchestrator(client, config).run(transcript, metadata)

        assert result.refinement_count == 1
        assert client.count("buyer") == 2
        assert result.overall_score == 76

    @pytest.mark.asyncio
    async def test_rerun_prompt_carries_feedback(self, config, transcript, metadata):
        replies = good_replies()
        replies["buyer"] = [as_reply({"pdcm_scores": {}}), replies["buyer"]]
        client = FakeLLMClient(replies)

        await Orchestrator(client, config).run(transcript, metadata)

        first_prompt = client.prompts["buyer"][0][1]
        second_prompt = client.prompts["buyer"][1][1]
        assert "Refinement Request" not in first_prompt
        assert "Previous Analysis (needs improvement)" in second_prompt
        assert "Problem found: all PDCM scores are zero" in second_prompt

    @pytest.mark.asyncio
    async def test_empty_sms_triggers_summary_rerun(self, config, transcript, metadata):
        replies = good_replies()
        summary = dict(GOOD_PAYLOADS["summary"], sms_text="")
        replies["summary"] = [as_reply(summary), replies["summary"]]
        client = FakeLLMClient(replies)

        result = await Orchestrator(client, config).run(transcript, metadata)

        assert result.refinement_count == 1
        assert client.count("summary") == 2
        assert client.count("coach") == 2
        assert client.count("buyer") == 1
        assert result.sms_text


class TestDegradation:
    @pytest.mark.asyncio
    async def test_context_service_failure_is_fatal(self, config, transcript, metadata):
        replies = good_replies()
        replies["context"] = TransientLLMError("upstream unavailable")
        client = FakeLLMClient(replies)

        with pytest.raises(PipelineError, match="context"):
            await Orchestrator(client, config).run(transcript, metadata)

        # One call plus two retries, nothing downstream
        assert client.calls == ["context", "context", "context"]

    @pytest.mark.asyncio
    async def test_context_parse_failure_is_not_fatal(self, config, transcript, metadata):
        replies = good_replies()
        replies["context"] = "I could not analyze this."
        client = FakeLLMClient(replies)

        result = await Orchestrator(client, config).run(transcript, metadata)

        assert "context" in result.degraded_agents
        assert result.low_confidence is True
        assert client.count("coach") >= 1

    @pytest.mark.asyncio
    async def test_buyer_failure_degrades_but_completes(self, config, transcript, metadata):
        replies = good_replies()
        replies["buyer"] = LLMServiceError("invalid request")
        client = FakeLLMClient(replies)

        result = await Orchestrator(client, config).run(transcript, metadata)

        assert result.degraded_agents == ["buyer"]
        assert result.low_confidence is True
        assert client.count("summary") >= 1
        assert client.count("coach") >= 1
        # Default buyer record: only the unconfirmed economic buyer contributes
        assert result.overall_score == 8
        assert result.qualification.status == QualificationStatus.AT_RISK
        assert result.refinement_count == 2

    @pytest.mark.asyncio
    async def test_transient_failure_recovered_by_retry(self, config, transcript, metadata):
        replies = good_replies()
        replies["seller"] = [TransientLLMError("rate limited"), replies["seller"]]
        client = FakeLLMClient(replies)

        result = await Orchestrator(client, config).run(transcript, metadata)

        assert client.count("seller") == 2
        assert result.degraded_agents == []
        assert result.low_confidence is False

    @pytest.mark.asyncio
    async def test_medium_confidence_parse_is_not_low_confidence(self, config, transcript, metadata):
        replies = good_replies()
        replies["crm"] = "Here you go: " + replies["crm"].replace("<JSON>", "").replace("</JSON>", "")
        client = FakeLLMClient(replies)

        result = await Orchestrator(client, config).run(transcript, metadata)

        assert result.low_confidence is False
        assert result.crm.stage_name == "Negotiation"


class TestCompetitorGating:
    @pytest.mark.asyncio
    async def test_no_competitor_keyword(self, config, transcript, metadata):
        replies = good_replies()
        buyer = dict(GOOD_PAYLOADS["buyer"], competitor_analysis={"detected_competitors": ["Acme"]})
        replies["buyer"] = as_reply(buyer)
        client = FakeLLMClient(replies)

        result = await Orchestrator(client, config).run(transcript, metadata)

        assert result.has_competitor is False
        assert result.competitor_analysis is None
        system_prompt = client.prompts["buyer"][0][0]
        assert "Competitors were mentioned" not in system_prompt

    @pytest.mark.asyncio
    async def test_competitor_keyword_enables_analysis(self, config, metadata):
        transcript = make_transcript([
            ("Owner", "We already use another POS and it is cheaper."),
            ("Sales", "Ours handles QR ordering out of the box."),
        ])
        replies = good_replies()
        buyer = dict(GOOD_PAYLOADS["buyer"], competitor_analysis={"detected_competitors": ["Acme POS"]})
        replies["buyer"] = as_reply(buyer)
        client = FakeLLMClient(replies)

        result = await Orchestrator(client, config).run(transcript, metadata)

        assert result.has_competitor is True
        assert result.competitor_analysis is not None
        assert result.competitor_analysis.detected_competitors == ["Acme POS"]
        assert any(r.severity == Severity.MEDIUM and "POS" in r.risk for r in result.risks)
        assert "Competitors were mentioned" in client.prompts["buyer"][0][0]
        assert "Competitor Keywords Detected" in client.prompts["buyer"][0][1]

    def test_keyword_matching_rules(self):
        transcript = make_transcript([("Owner", "Our Competitor is cheaper; the purpose is speed.")])
        assert detect_competitor_keywords(transcript, ["competitor", "POS"]) == ["competitor"]


class TestInterruption:
    @pytest.mark.asyncio
    async def test_timeout_during_first_pass_raises(self, config, transcript, metadata):
        client = FakeLLMClient(delay=0.2)
        with pytest.raises(PipelineCancelledError):
            await Orchestrator(client, config).run(transcript, metadata, timeout=0.05)

    @pytest.mark.asyncio
    async def test_cancel_during_refinement_returns_best_result(self, config, transcript, metadata):
        cancel = asyncio.Event()
        replies = good_replies()

        def bad_buyer(system_prompt: str, user_prompt: str) -> str:
            if "Refinement Request" in user_prompt:
                cancel.set()
            return as_reply({"pdcm_scores": {}})

        replies["buyer"] = bad_buyer
        client = FakeLLMClient(replies, delay=0.01)

        result = await Orchestrator(client, config).run(
            transcript, metadata, cancel_event=cancel
        )

        assert result.interrupted is True
        assert result.low_confidence is True
        assert result.refinement_count == 1
        assert result.sms_text == GOOD_PAYLOADS["summary"]["sms_text"]


class TestConcurrentAnalyses:
    @pytest.mark.asyncio
    async def test_shared_orchestrator_keeps_states_apart(self, config, transcript):
        client = FakeLLMClient(delay=0.01)
        orchestrator = Orchestrator(client, config)

        results = await asyncio.gather(*(
            orchestrator.run(transcript, make_metadata(conversation_id=f"conv-{i}"))
            for i in range(3)
        ))

        assert [r.conversation_id for r in results] == ["conv-0", "conv-1", "conv-2"]
        assert len(client.calls) == 18
        assert orchestrator.monitor.calculate().passes == 6
