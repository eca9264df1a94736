"""
Offline console demo: runs the full analysis pipeline without any API keys.

Uses the real orchestrator, agents, parser, score mapper and alert rules.
Only the language model is replaced by scripted replies, so the demo is
deterministic and needs no network access.

Usage:
    python console_demo.py
    python console_demo.py --scenario stalled
    python console_demo.py --scenario competitor
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from src.alerts.evaluator import AlertEvaluator, InMemoryAlertStore, build_evaluation_context
from src.config import settings
from src.pipeline.orchestrator import Orchestrator
from src.schemas.analysis_schema import AnalysisResult
from src.schemas.transcript_schema import ConversationMetadata, Transcript, TranscriptSegment

GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

ROLE_MARKERS = {
    "You are the Context agent": "context",
    "You are the Buyer agent": "buyer",
    "You are the Seller agent": "seller",
    "You are the Summary agent": "summary",
    "You are the CRM Extraction agent": "crm",
    "You are the Coach agent": "coach",
}

TRANSCRIPTS: dict[str, list[tuple[str, str]]] = {
    "close": [
        ("Sales", "老闆您好，上次您提到結帳很慢，今天想跟您確認一下導入的細節。"),
        ("Owner", "對，尖峰時段客人排到門口，一天至少少做二十桌。"),
        ("Sales", "如果用 iCHEF 的掃碼點餐，點餐時間可以縮短一半。"),
        ("Owner", "預算我已經跟合夥人談好了，這個月可以簽約。"),
        ("Sales", "好的，我今天就把合約寄給您。"),
    ],
    "stalled": [
        ("Sales", "您好，想了解一下您店裡現在用什麼系統？"),
        ("Staff", "我只是店員，這些要問老闆。"),
        ("Sales", "那請問老闆什麼時候在？"),
        ("Staff", "不太確定，他最近很少來店裡。"),
    ],
    "competitor": [
        ("Sales", "老闆您好，今天來介紹一下我們的點餐系統。"),
        ("Owner", "我們現在用別的系統，其他廠商也有來報價。"),
        ("Sales", "了解，請問您覺得現在的 POS 有什麼不方便的地方？"),
        ("Owner", "報表很難看，月底對帳要花一整天。"),
    ],
}

REPLIES: dict[str, dict[str, dict[str, Any]]] = {
    "close": {
        "context": {
            "decision_maker": "老闆", "decision_maker_confirmed": True, "urgency_level": "high",
            "customer_motivation": "尖峰時段結帳太慢", "barriers": [], "meeting_type": "follow_up",
        },
        "buyer": {
            "pdcm_scores": {
                "pain": {"score": 90, "level": "P1", "main_pain": "尖峰時段結帳慢，每天少做二十桌",
                         "urgency": "high", "evidence": ["一天至少少做二十桌"]},
                "decision": {"score": 85, "contact_role": "老闆", "has_authority": True,
                             "budget_awareness": "預算已與合夥人確認", "timeline": "本月簽約"},
                "champion": {"score": 85, "attitude": "positive", "primary_criteria": "結帳速度",
                             "evidence": ["這個月可以簽約"]},
                "metrics": {"score": 80, "level": "M2", "roi_message": "每天多做二十桌",
                            "quantified_items": [{"category": "revenue",
                                                  "description": "尖峰多接二十桌",
                                                  "monthly_value": 60000}]},
                "total_score": 85, "deal_probability": "high",
            },
            "pcm_state": "ready_to_close",
        },
        "seller": {
            "progress_score": 85, "has_clear_ask": True, "recommended_strategy": "close",
            "next_action": {"action": "寄送合約並約簽約時間", "deadline": "今天"},
        },
        "summary": {
            "sms_text": "老闆您好，合約已寄出，掃碼點餐幫您尖峰多接二十桌！[SHORT_URL]",
            "markdown": "- 痛點：尖峰結帳慢\n- 決策：本月簽約",
            "key_decisions": ["本月簽約"],
            "action_items": {"sales": ["寄送合約"], "customer": ["確認合約內容"]},
        },
        "crm": {
            "stage_name": "Negotiation", "stage_confidence": 0.9,
            "budget": {"range": "已核准", "mentioned": True, "decision_maker": "老闆"},
            "next_steps": ["寄送合約"],
        },
        "coach": {
            "alert_triggered": True, "alert_type": "close_now", "alert_severity": "high",
            "coaching_notes": "客戶已表態要簽約，今天就把合約送出並約定簽約時間。",
            "strengths": ["抓住結帳痛點"],
            "follow_up": {"timing": "24 小時內", "method": "電話"},
        },
    },
    "stalled": {
        "context": {"decision_maker": "", "decision_maker_confirmed": False, "urgency_level": "low",
                    "barriers": ["老闆不在店裡"]},
        "buyer": {
            "pdcm_scores": {
                "pain": {"score": 20, "main_pain": "不明確", "evidence": []},
                "decision": {"score": 10, "contact_role": "店員", "has_authority": False},
                "champion": {"score": 15, "attitude": "neutral"},
                "metrics": {"score": 0},
                "total_score": 12, "deal_probability": "low",
            },
        },
        "seller": {"progress_score": 15, "has_clear_ask": False,
                   "next_action": {"action": "約老闆在店時間再訪"}},
        "summary": {"sms_text": "您好，期待有機會跟老闆聊聊店裡的點餐需求！[SHORT_URL]"},
        "crm": {"stage_name": "Prospecting", "stage_confidence": 0.6},
        "coach": {"coaching_notes": "先確認決策者，不要對店員做完整簡報。",
                  "alert_type": "missed_dm", "manager_alert": True},
    },
    "competitor": {
        "context": {"decision_maker": "老闆", "decision_maker_confirmed": True,
                    "urgency_level": "medium"},
        "buyer": {
            "pdcm_scores": {
                "pain": {"score": 60, "main_pain": "月底對帳耗時", "evidence": ["月底對帳要花一整天"]},
                "decision": {"score": 55, "contact_role": "老闆", "has_authority": True},
                "champion": {"score": 45, "attitude": "neutral", "evidence": []},
                "metrics": {"score": 30},
                "total_score": 50,
            },
            "competitor_analysis": {
                "detected_competitors": ["現用 POS", "其他廠商"], "threat_level": "medium",
                "our_advantages": ["即時報表"],
            },
        },
        "seller": {"progress_score": 50, "next_action": {"action": "示範報表功能"}},
        "summary": {"sms_text": "老闆您好，iCHEF 報表一鍵對帳，月底不用再熬夜！[SHORT_URL]"},
        "crm": {"stage_name": "Discovery", "stage_confidence": 0.7},
        "coach": {"coaching_notes": "把對帳痛點量化成每月工時成本。",
                  "competitor_talk_tracks": ["強調即時報表與雲端對帳"]},
    },
}


class ScriptedLLMClient:
    """Returns canned JSON replies keyed by the agent named in the system prompt."""

    def __init__(self, replies: dict[str, dict[str, Any]]) -> None:
        self.replies = replies
        self.calls: list[str] = []

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        role = next(
            (name for marker, name in ROLE_MARKERS.items() if marker in system_prompt), "unknown"
        )
        self.calls.append(role)
        payload = json.dumps(self.replies.get(role, {}), ensure_ascii=False)
        return f"Here is my analysis.\n<JSON>{payload}</JSON>"


def build_transcript(lines: list[tuple[str, str]]) -> Transcript:
    segments = []
    for i, (speaker, text) in enumerate(lines):
        segments.append(TranscriptSegment(speaker=speaker, text=text, start=i * 20.0, end=i * 20.0 + 15.0))
    return Transcript(segments=segments)


def print_result(result: AnalysisResult) -> None:
    q = result.qualification
    colour = GREEN if q.overall_score >= 70 else YELLOW if q.overall_score >= 40 else RED
    print(f"\n{BOLD}Overall score:{RESET} {colour}{q.overall_score} ({q.status.value}){RESET}")
    for name, dim in q.dimensions:
        bar = "#" * dim.score + "." * (5 - dim.score)
        print(f"  {name:<18} {bar} {dim.score}/5")
    print(f"\n{BOLD}Key findings{RESET}")
    for finding in result.key_findings:
        print(f"  - {finding}")
    print(f"\n{BOLD}Risks{RESET}")
    for risk in result.risks or []:
        print(f"  [{risk.severity.value}] {risk.risk}")
    if not result.risks:
        print(f"  {DIM}none{RESET}")
    print(f"\n{BOLD}SMS{RESET} {result.sms_text}")
    print(f"{BOLD}Coaching{RESET} {result.coaching_notes}")
    print(f"{DIM}refinements={result.refinement_count} low_confidence={result.low_confidence}{RESET}")


async def run_scenario(name: str) -> None:
    client = ScriptedLLMClient(REPLIES[name])
    orchestrator = Orchestrator(client=client, config=settings)
    transcript = build_transcript(TRANSCRIPTS[name])
    metadata = ConversationMetadata(
        conversation_id=f"demo-{name}",
        opportunity_id=f"opp-{name}",
        opportunity_name=f"Demo restaurant ({name})",
        sales_rep="demo",
    )

    print(f"{BOLD}Scenario: {name}{RESET}")
    for seg in transcript.segments:
        print(f"{DIM}  {seg.format_line()}{RESET}")

    result = await orchestrator.run(transcript, metadata)
    print_result(result)

    history = {"stalled": (3, [32, 28]), "close": (2, []), "competitor": (1, [])}
    count, previous = history[name]
    ctx = build_evaluation_context(
        result,
        transcript_text=transcript.full_text,
        conversation_count=count,
        previous_scores=previous,
        opportunity_name=metadata.opportunity_name or "",
    )
    alerts = AlertEvaluator(settings.alerts).evaluate_and_store(ctx, InMemoryAlertStore())
    print(f"\n{BOLD}Alerts{RESET}")
    for alert in alerts:
        print(f"  {RED}[{alert.severity.value}]{RESET} {alert.title}: {alert.message}")
    if not alerts:
        print(f"  {DIM}none{RESET}")
    print(f"\n{DIM}Model calls: {', '.join(client.calls)}{RESET}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline sales-call analysis demo")
    parser.add_argument("--scenario", choices=sorted(TRANSCRIPTS), default="close")
    args = parser.parse_args()
    try:
        asyncio.run(run_scenario(args.scenario))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
