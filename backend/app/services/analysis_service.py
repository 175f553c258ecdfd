"""
Analysis Service - AI-assisted failure analysis.

Builds prompts from the intake data, investigation notes, follow-up Q&A and
existing candidates, sends them through the cloud-agnostic LLMAdapter and
validates the JSON reply. The workflow calls this before opening its
transaction; any failure here means nothing is written.
"""

import asyncio
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError

from backend.app.core.config import get_settings
from backend.app.core.errors import AnalysisUnavailable
from backend.app.core.logging import get_logger
from backend.app.core.resilience import CircuitBreakerOpenException, llm_circuit_breaker
from backend.app.schemas.analysis import AnalysisResult, ReanalysisResult
from backend.app.services.llm_adapter import LLMAdapter, get_adapter

logger = get_logger(__name__)
settings = get_settings()


INITIAL_SYSTEM_PROMPT = """You are an expert reliability engineer performing a Root Cause Failure Analysis (RCFA). Analyze the intake data provided and return valid JSON only with the following structure:

{
  "followup_questions": [
    { "question_text": "string", "question_category": "failure_mode|evidence|operating_context|maintenance_history|safety|other" }
  ],
  "root_cause_candidates": [
    { "cause_text": "string", "rationale_text": "string", "confidence_label": "low|medium|high" }
  ],
  "action_item_candidates": [
    { "action_text": "string", "rationale_text": "string", "priority": "low|medium|high", "timeframe_text": "string", "success_criteria": "string" }
  ]
}

Requirements:
- followup_questions: 5 to 10 items. Choose the most relevant question_category for each.
- root_cause_candidates: 3 to 6 items. Provide a rationale and confidence level for each.
- action_item_candidates: 5 to 10 items. Include priority, a concrete timeframe, and measurable success criteria.
- Return ONLY valid JSON. No markdown, no commentary."""


REANALYSIS_SYSTEM_PROMPT = """You are an expert reliability engineer performing a Root Cause Failure Analysis (RCFA). You previously analyzed intake data and generated follow-up questions and candidates. New information is now available: answers to follow-up questions and/or investigation notes.

STEP 1 - MATERIALITY ASSESSMENT. Decide whether the new information materially changes the engineering conclusions captured by the existing candidates: a new failure mechanism, evidence contradicting an existing candidate, a shift in confidence of a root cause, or a change in relevance or urgency of an action item. Reformatting, paraphrasing or small numeric variance that leads to the same conclusion is NEVER material. If nothing is material, set no_material_change to true and return empty arrays.

STEP 2A - RE-EVALUATE EXISTING AI CANDIDATES. For candidates with generated_by="ai" whose confidence or priority should CHANGE, return an update with the candidate id, the new level and an update_reason. Use "deprioritized" when evidence strongly contradicts a hypothesis or makes an action irrelevant. NEVER include candidates with generated_by="human".

STEP 2B - NEW CANDIDATES ONLY. Return only genuinely new root causes and action items; they are appended to the existing list. Do not repeat or rephrase existing candidates.

Return valid JSON only with the following structure:

{
  "materiality_reasoning": "string (max 45 words)",
  "no_material_change": true | false,
  "existing_candidate_updates": {
    "root_causes": [ { "id": "uuid", "confidence_label": "deprioritized|low|medium|high", "update_reason": "string" } ],
    "action_items": [ { "id": "uuid", "priority": "deprioritized|low|medium|high", "update_reason": "string" } ]
  },
  "root_cause_candidates": [
    { "cause_text": "string", "rationale_text": "string", "confidence_label": "low|medium|high" }
  ],
  "action_item_candidates": [
    { "action_text": "string", "rationale_text": "string", "priority": "low|medium|high", "timeframe_text": "string", "success_criteria": "string" }
  ]
}

If no existing candidates are on file (both sections show "(none)"), no_material_change MUST be false and a full analysis is required.
Return ONLY valid JSON. No markdown, no commentary."""


class QuestionContext(BaseModel):
    id: str
    question_text: str
    answer_text: Optional[str] = None


class CandidateContext(BaseModel):
    id: str
    text: str
    label: str
    generated_by: str
    rationale_text: Optional[str] = None
    timeframe_text: Optional[str] = None
    success_criteria: Optional[str] = None


class AnalysisContext(BaseModel):
    """Everything the analysis collaborator is allowed to see about a record."""
    intake: Dict[str, Any]
    investigation_notes: Optional[str] = None
    questions: List[QuestionContext] = []
    root_cause_candidates: List[CandidateContext] = []
    action_item_candidates: List[CandidateContext] = []


INTAKE_LABELS = [
    ("equipment_description", "Equipment Description"),
    ("equipment_make", "Equipment Make"),
    ("equipment_model", "Equipment Model"),
    ("equipment_serial_number", "Serial Number"),
    ("equipment_age_years", "Equipment Age (years)"),
    ("operating_context", "Operating Context"),
    ("pre_failure_conditions", "Pre-Failure Conditions"),
    ("failure_description", "Failure Description"),
    ("work_history_summary", "Work History Summary"),
    ("active_pms_summary", "Active PMs Summary"),
    ("additional_notes", "Additional Notes"),
]


def truncate_field(text: Optional[str], max_len: Optional[int] = None) -> str:
    """Truncate a text field to a safe length for inclusion in the prompt."""
    if not text:
        return ""
    max_len = max_len or settings.analysis_field_max_chars
    if len(text) <= max_len:
        return text
    return text[:max_len] + "…"


def build_intake_prompt(intake: Dict[str, Any]) -> str:
    lines = []
    for key, label in INTAKE_LABELS:
        value = intake.get(key)
        if value is None or value == "":
            continue
        lines.append(f"{label}: {value}")
    return "\n".join(lines)


def _candidate_line(index: int, candidate: CandidateContext, label_name: str) -> str:
    marker = " [DO NOT RE-EVALUATE]" if candidate.generated_by == "human" else ""
    line = (
        f'[{index}] id="{candidate.id}" | generated_by="{candidate.generated_by}"{marker} | '
        f"{truncate_field(candidate.text)} | {label_name}: {candidate.label}"
    )
    if candidate.timeframe_text:
        line += f" | Timeframe: {truncate_field(candidate.timeframe_text)}"
    if candidate.rationale_text:
        line += f" | Rationale: {truncate_field(candidate.rationale_text)}"
    if candidate.success_criteria:
        line += f" | Success Criteria: {truncate_field(candidate.success_criteria)}"
    return line


def build_reanalysis_prompt(context: AnalysisContext) -> str:
    sections = ["=== ORIGINAL INTAKE DATA ===", build_intake_prompt(context.intake)]

    if context.investigation_notes:
        sections += [
            "",
            "=== INVESTIGATION NOTES (NEW FINDINGS) ===",
            truncate_field(context.investigation_notes, settings.analysis_notes_max_chars),
        ]

    qa = [
        f"Q: {q.question_text}\nA: {q.answer_text if q.answer_text is not None else '(Not yet answered)'}"
        for q in context.questions
    ]
    rc = [_candidate_line(i + 1, c, "Confidence") for i, c in enumerate(context.root_cause_candidates)]
    ai = [_candidate_line(i + 1, c, "Priority") for i, c in enumerate(context.action_item_candidates)]

    sections += [
        "",
        "=== FOLLOW-UP QUESTIONS & ANSWERS ===",
        "\n\n".join(qa) if qa else "(none)",
        "",
        "=== EXISTING ROOT CAUSE CANDIDATES ===",
        "\n".join(rc) if rc else "(none)",
        "",
        "=== EXISTING ACTION ITEM CANDIDATES ===",
        "\n".join(ai) if ai else "(none)",
    ]
    return "\n".join(sections)


class AnalysisService:
    """Service for generating and refreshing candidate findings."""

    def __init__(self, adapter: Optional[LLMAdapter] = None):
        self._adapter = adapter

    @property
    def adapter(self) -> LLMAdapter:
        if self._adapter is None:
            self._adapter = get_adapter()
        return self._adapter

    async def _call(self, system_prompt: str, user_prompt: str, result_model):
        async def _generate():
            return await asyncio.wait_for(
                self.adapter.generate_json(system_prompt, user_prompt),
                timeout=settings.llm_timeout_seconds,
            )

        try:
            response = await llm_circuit_breaker.call(_generate)
        except CircuitBreakerOpenException as e:
            logger.error(f"Analysis skipped, provider circuit open: {e}")
            raise AnalysisUnavailable("Analysis service is temporarily unavailable") from e
        except Exception as e:
            logger.error(f"Analysis provider call failed: {e}", exc_info=True)
            raise AnalysisUnavailable("Failed to analyze record") from e

        try:
            return result_model.model_validate_json(response.text)
        except ValidationError as e:
            logger.error(
                "Analysis provider returned malformed output",
                extra={"extra_data": {"model_version": response.model_version, "prompt_hash": response.prompt_hash}},
            )
            raise AnalysisUnavailable("Analysis returned malformed output") from e

    async def analyze(self, context: AnalysisContext) -> AnalysisResult:
        result = await self._call(INITIAL_SYSTEM_PROMPT, build_intake_prompt(context.intake), AnalysisResult)
        logger.info(f"Initial analysis produced {result.counts}")
        return result

    async def reanalyze(self, context: AnalysisContext) -> ReanalysisResult:
        result = await self._call(REANALYSIS_SYSTEM_PROMPT, build_reanalysis_prompt(context), ReanalysisResult)
        if result.materiality_reasoning:
            result.materiality_reasoning = truncate_field(
                result.materiality_reasoning, settings.materiality_reasoning_max_chars
            )
        logger.info(f"Re-analysis completed, no_material_change={result.no_material_change}")
        return result


_analysis_service: Optional[AnalysisService] = None

def get_analysis_service() -> AnalysisService:
    """Get the analysis service singleton."""
    global _analysis_service
    if _analysis_service is None:
        _analysis_service = AnalysisService()
    return _analysis_service
