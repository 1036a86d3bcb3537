"""
Tests for the three-stage plan synthesis pipeline and its fallbacks.
"""
import base64

import pytest
from sqlalchemy import select

from placement_api.config import settings
from placement_api.errors import GenerationClientError, GenerationTimeout
from placement_api.models import UsageRecord
from placement_api.services.plan_synthesizer import (
    PlanSynthesizer,
    diagnostic_score,
    extract_learning_plan_section,
    level_for_score,
    stitch_document,
)
from placement_api.services.prompts import DETAILS_PLACEHOLDER, LEARNING_PLAN_PLACEHOLDER
from tests.fakes import FakeGenerationClient

FRAMEWORK = (
    "## Personalized Mastery Plan\n"
    "**Your Goal:** \"GCSE Maths\"\n\n"
    "## 2. Diagnostic Summary\n- Solid on addition\n\n"
    "## 3. Learning Plan\n"
    "{{learning_plan_placeholder}}\n\n"
    "## 4. Tutor Insights\n- Practice daily\n"
)
STRUCTURE = (
    "Here is the structure.\n\n"
    "## 3. Learning Plan\n\n"
    "### Phase 1: Number\n"
    "#### Module 1: Long division\n"
    "{{details_to_be_filled}}\n"
)
CONTENT = (
    "## 3. Learning Plan\n\n"
    "### Phase 1: Number\n"
    "#### Module 1: Long division\n"
    "**Goal:** Divide multi-digit numbers\n"
    "**Resource:** https://example.org/division\n"
    "**Check:** 9/10 practice questions\n"
)

RESPONSES = [
    {"order": 1, "question": "2 + 2?", "concept": "addition", "is_correct": True, "user_response": "B", "correct_answer": "B"},
    {"order": 2, "question": "12 / 4?", "concept": "division", "is_correct": False, "user_response": None, "correct_answer": "C"},
    {"order": 3, "question": "3 x 3?", "concept": "multiplication", "is_correct": True, "user_response": "C", "correct_answer": "C"},
]


def fake_renderer(markdown, meta):
    return b"%PDF-1.4 fake"


def broken_renderer(markdown, meta):
    raise RuntimeError("renderer crashed")


async def run(synthesizer, db=None):
    return await synthesizer.synthesize(
        db,
        user_id="learner-1",
        goal="GCSE Maths",
        experience="Year 9",
        responses=RESPONSES,
    )


class TestSynthesize:

    async def test_all_stages_succeed(self):
        client = FakeGenerationClient(FRAMEWORK, STRUCTURE, CONTENT)
        result = await run(PlanSynthesizer(client, fake_renderer))

        assert result.framework_completed is True
        assert result.structure_completed is True
        assert result.content_completed is True
        assert result.content_skipped is False
        assert LEARNING_PLAN_PLACEHOLDER not in result.document
        assert DETAILS_PLACEHOLDER not in result.document
        assert "**Resource:** https://example.org/division" in result.document
        assert result.document.count("## 3. Learning Plan") == 1
        assert result.document.index("Long division") < result.document.index("## 4. Tutor Insights")
        assert len(client.requests) == 3

    async def test_content_stage_receives_extracted_section(self):
        client = FakeGenerationClient(FRAMEWORK, STRUCTURE, CONTENT)
        await run(PlanSynthesizer(client, fake_renderer))

        content_prompt = client.requests[2].messages[-1]["content"]
        assert "#### Module 1: Long division" in content_prompt
        assert "Here is the structure." not in content_prompt
        assert client.requests[2].web_search is True

    async def test_framework_failure_uses_local_template(self):
        client = FakeGenerationClient(GenerationClientError("down"), STRUCTURE, CONTENT)
        result = await run(PlanSynthesizer(client, fake_renderer))

        assert result.framework_completed is False
        assert result.document.startswith("## Learning Plan Summary")
        assert "**Goal:** GCSE Maths" in result.document
        assert "**Assessment Score:** 67%" in result.document
        assert "Long division" in result.document
        assert LEARNING_PLAN_PLACEHOLDER not in result.document

    async def test_structure_failure_skips_content(self):
        client = FakeGenerationClient(FRAMEWORK, GenerationTimeout("deadline"), "never used")
        result = await run(PlanSynthesizer(client, fake_renderer))

        assert result.framework_completed is True
        assert result.structure_completed is False
        assert result.content_completed is False
        assert result.content_skipped is True
        assert result.document == FRAMEWORK.strip()
        assert LEARNING_PLAN_PLACEHOLDER in result.document
        assert len(client.requests) == 2

    async def test_content_failure_falls_back_to_skeleton(self):
        client = FakeGenerationClient(FRAMEWORK, STRUCTURE, GenerationClientError("down"))
        result = await run(PlanSynthesizer(client, fake_renderer))

        assert result.structure_completed is True
        assert result.content_completed is False
        assert result.content_skipped is False
        assert "#### Module 1: Long division" in result.document
        assert DETAILS_PLACEHOLDER in result.document
        assert LEARNING_PLAN_PLACEHOLDER not in result.document

    async def test_all_stages_fail_still_returns_document(self):
        client = FakeGenerationClient(GenerationClientError("a"), GenerationClientError("b"))
        result = await run(PlanSynthesizer(client, fake_renderer))

        assert result.framework_completed is False
        assert result.content_skipped is True
        assert result.document.strip()

    async def test_empty_stage_output_counts_as_failure(self):
        client = FakeGenerationClient("   ", STRUCTURE, CONTENT)
        result = await run(PlanSynthesizer(client, fake_renderer))

        assert result.framework_completed is False
        assert result.document.startswith("## Learning Plan Summary")

    async def test_rendered_pdf_is_attached(self):
        result = await run(PlanSynthesizer(FakeGenerationClient(FRAMEWORK, STRUCTURE, CONTENT), fake_renderer))

        assert result.rendered is True
        assert result.pdf["content_type"] == "application/pdf"
        assert result.pdf["filename"].startswith("learning-plan-gcse-maths-")
        assert base64.b64decode(result.pdf["base64"]) == b"%PDF-1.4 fake"
        assert result.artifact_path is None

    async def test_render_failure_keeps_plan_text(self):
        result = await run(PlanSynthesizer(FakeGenerationClient(FRAMEWORK, STRUCTURE, CONTENT), broken_renderer))

        assert result.rendered is False
        assert result.pdf is None
        assert result.content_completed is True
        assert "Long division" in result.document

    async def test_artifact_written_when_directory_configured(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "PLAN_ARTIFACT_DIR", str(tmp_path))
        result = await run(PlanSynthesizer(FakeGenerationClient(FRAMEWORK, STRUCTURE, CONTENT), fake_renderer))

        assert result.artifact_path is not None
        with open(result.artifact_path, "rb") as f:
            assert f.read() == b"%PDF-1.4 fake"

    async def test_score_level_and_summary(self):
        result = await run(PlanSynthesizer(FakeGenerationClient(FRAMEWORK, STRUCTURE, CONTENT), fake_renderer))

        assert result.score == 67
        assert result.level == "Advanced"
        assert "2 of 3" in result.summary
        assert "division" in result.summary

    async def test_usage_recorded_per_successful_stage(self, db_session):
        client = FakeGenerationClient(FRAMEWORK, STRUCTURE, GenerationClientError("down"))
        await run(PlanSynthesizer(client, fake_renderer), db=db_session)

        endpoints = [row.endpoint for row in db_session.scalars(select(UsageRecord).order_by(UsageRecord.id))]
        assert endpoints == ["plan_framework", "plan_structure"]


class TestStitchDocument:

    def test_replaces_heading_and_placeholder_block(self):
        document = stitch_document(FRAMEWORK, CONTENT)

        assert document.count("## 3. Learning Plan") == 1
        assert LEARNING_PLAN_PLACEHOLDER not in document
        assert document.endswith("## 4. Tutor Insights\n- Practice daily\n")

    def test_adds_heading_when_details_have_none(self):
        document = stitch_document(FRAMEWORK, "### Phase 1: Number")
        assert "## 3. Learning Plan\n### Phase 1: Number" in document

    def test_emoji_heading_variant(self):
        framework = "## Plan\n\n## \U0001F4DA 3. Learning Plan\n{{learning_plan_placeholder}}\n\n## 4. Tips\n"
        document = stitch_document(framework, CONTENT)

        assert LEARNING_PLAN_PLACEHOLDER not in document
        assert "\U0001F4DA" not in document
        assert "Long division" in document

    def test_bare_marker(self):
        document = stitch_document("Intro\n\n{{learning_plan_placeholder}}\n\nOutro", "DETAILS")
        assert document == "Intro\n\nDETAILS\n\nOutro"

    def test_appends_when_marker_missing(self):
        assert stitch_document("Intro\n", "DETAILS") == "Intro\n\nDETAILS"


class TestHelpers:

    def test_extract_learning_plan_section(self):
        assert extract_learning_plan_section(STRUCTURE).startswith("## 3. Learning Plan")
        assert extract_learning_plan_section("Intro\n## Learning Plan\nbody") == "## Learning Plan\nbody"

    def test_extract_without_heading_returns_whole_text(self):
        assert extract_learning_plan_section("  Phase 1 only  ") == "Phase 1 only"
        assert extract_learning_plan_section(None) == ""

    @pytest.mark.parametrize("score, level", [(0, "Beginner"), (33, "Beginner"), (34, "Intermediate"), (66, "Intermediate"), (67, "Advanced"), (100, "Advanced")])
    def test_level_thresholds(self, score, level):
        assert level_for_score(score) == level

    def test_diagnostic_score(self):
        assert diagnostic_score(RESPONSES) == 67
        assert diagnostic_score([]) == 0
