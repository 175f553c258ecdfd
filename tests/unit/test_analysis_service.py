"""
Unit tests for the analysis service: prompt building, output validation and
failure mapping. The LLM adapter is replaced by an in-memory fake.
"""
import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from backend.app.core.errors import AnalysisUnavailable
from backend.app.schemas.analysis import ReanalysisResult, SuggestedRootCause
from backend.app.services.analysis_service import (
    AnalysisContext,
    AnalysisService,
    CandidateContext,
    QuestionContext,
    build_intake_prompt,
    build_reanalysis_prompt,
    truncate_field,
)
from backend.app.services.llm_adapter import LLMAdapter, LLMAdapterConfig, LLMResponse


class FakeAdapter(LLMAdapter):
    def __init__(self, reply=None, error=None):
        super().__init__(LLMAdapterConfig(provider="fake", model_name="fake-1"))
        self.reply = reply
        self.error = error
        self.prompts = []

    async def generate_json(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        self.prompts.append((system_prompt, user_prompt))
        if self.error:
            raise self.error
        return LLMResponse(
            text=self.reply if isinstance(self.reply, str) else json.dumps(self.reply),
            model_version=self.model_version,
            prompt_hash=self.compute_prompt_hash(user_prompt),
            timestamp=datetime.now(timezone.utc),
            provider="fake",
        )


def _context(**overrides) -> AnalysisContext:
    data = {
        "intake": {
            "equipment_description": "Centrifugal pump",
            "failure_description": "Bearing seized",
            "operating_context": "running",
            "equipment_make": None,
        },
    }
    data.update(overrides)
    return AnalysisContext(**data)


def test_truncate_field():
    assert truncate_field(None) == ""
    assert truncate_field("short", 10) == "short"
    assert truncate_field("x" * 20, 10) == "x" * 10 + "…"


def test_intake_prompt_skips_empty_fields():
    prompt = build_intake_prompt(_context().intake)
    assert "Equipment Description: Centrifugal pump" in prompt
    assert "Operating Context: running" in prompt
    assert "Equipment Make" not in prompt


def test_reanalysis_prompt_marks_human_candidates():
    context = _context(
        investigation_notes="Found metal flakes in the oil sample",
        questions=[
            QuestionContext(id="q1", question_text="Oil analysis?", answer_text="Iron 120 ppm"),
            QuestionContext(id="q2", question_text="Last PM?"),
        ],
        root_cause_candidates=[
            CandidateContext(id="rc-ai", text="Lubrication starvation", label="high", generated_by="ai"),
            CandidateContext(id="rc-h", text="Operator error", label="low", generated_by="human"),
        ],
    )
    prompt = build_reanalysis_prompt(context)
    assert "=== INVESTIGATION NOTES (NEW FINDINGS) ===" in prompt
    assert "A: Iron 120 ppm" in prompt
    assert "A: (Not yet answered)" in prompt
    assert 'id="rc-h" | generated_by="human" [DO NOT RE-EVALUATE]' in prompt
    assert 'id="rc-ai" | generated_by="ai" |' in prompt
    assert "=== EXISTING ACTION ITEM CANDIDATES ===\n(none)" in prompt


def test_no_material_change_discards_candidates():
    result = ReanalysisResult(
        no_material_change=True,
        root_cause_candidates=[SuggestedRootCause(cause_text="Something new")],
    )
    assert result.root_cause_candidates == []


def test_material_change_requires_output():
    with pytest.raises(ValidationError):
        ReanalysisResult(no_material_change=False)


@pytest.mark.asyncio
async def test_analyze_parses_provider_json():
    adapter = FakeAdapter(reply={
        "followup_questions": [{"question_text": "Vibration trend?", "question_category": "evidence"}],
        "root_cause_candidates": [{"cause_text": "Misalignment", "confidence_label": "medium"}],
        "action_item_candidates": [],
    })
    result = await AnalysisService(adapter).analyze(_context())
    assert result.counts == {"followup_questions": 1, "root_cause_candidates": 1, "action_item_candidates": 0}
    assert "Bearing seized" in adapter.prompts[0][1]


@pytest.mark.asyncio
async def test_malformed_output_is_unavailable():
    adapter = FakeAdapter(reply="{not json")
    with pytest.raises(AnalysisUnavailable):
        await AnalysisService(adapter).analyze(_context())


@pytest.mark.asyncio
async def test_invalid_enum_is_unavailable():
    adapter = FakeAdapter(reply={"root_cause_candidates": [{"cause_text": "x", "confidence_label": "certain"}]})
    with pytest.raises(AnalysisUnavailable):
        await AnalysisService(adapter).analyze(_context())


@pytest.mark.asyncio
async def test_provider_failure_opens_breaker():
    adapter = FakeAdapter(error=RuntimeError("503 from provider"))
    service = AnalysisService(adapter)
    for _ in range(3):
        with pytest.raises(AnalysisUnavailable):
            await service.analyze(_context())
    assert len(adapter.prompts) == 3

    # Circuit open: the provider is not called again
    with pytest.raises(AnalysisUnavailable):
        await service.analyze(_context())
    assert len(adapter.prompts) == 3


@pytest.mark.asyncio
async def test_reanalyze_truncates_reasoning():
    adapter = FakeAdapter(reply={
        "materiality_reasoning": "r" * 800,
        "no_material_change": True,
    })
    result = await AnalysisService(adapter).reanalyze(_context())
    assert result.no_material_change is True
    assert len(result.materiality_reasoning) == 501
