"""
Unit tests for the model generation pipeline.

Tests cover:
- Request analysis (structure type, dimensions, intents)
- Valid LLM output accepted as-is
- Correction round-trip and procedural fallbacks for frames, portals and Warren trusses
- Unparseable LLM output
- Edit mode boundary-condition and load preservation
- Fail-open handling of validator faults
"""

import json
from unittest.mock import Mock, patch

import pytest

from src.ai.config import AIConfig
from src.ai.model_service import ModelGenerationService
from src.ai.providers import (
    LLMProvider,
    LLMProviderError,
    LLMProviderType,
    LLMResponse,
    RetryState,
)
from src.core.data_models import NodeLoad, StructuralModel, StructureType, TrussType

from conftest import frame_dict

PRATT_TRUSS = {
    "nodes": [
        {"x": 0, "y": 0, "s": "p"}, {"x": 3, "y": 0, "s": "f"}, {"x": 6, "y": 0, "s": "f"},
        {"x": 9, "y": 0, "s": "f"}, {"x": 12, "y": 0, "s": "r"},
        {"x": 0, "y": 3, "s": "f"}, {"x": 3, "y": 3, "s": "f"}, {"x": 6, "y": 3, "s": "f"},
        {"x": 9, "y": 3, "s": "f"}, {"x": 12, "y": 3, "s": "f"},
    ],
    "members": [
        {"i": i, "j": j} for i, j in (
            (1, 2), (2, 3), (3, 4), (4, 5), (6, 7), (7, 8), (8, 9), (9, 10),
            (1, 6), (2, 7), (3, 8), (4, 9), (5, 10),
            (6, 2), (7, 3), (9, 3), (10, 4),
        )
    ],
}


def llm_response(content, retry_state=None):
    if not isinstance(content, str):
        content = "```json\n" + json.dumps(content, ensure_ascii=False) + "\n```"
    return LLMResponse(
        content=content,
        model="llama-3.3-70b-versatile",
        provider=LLMProviderType.GROQ,
        retry_state=retry_state or RetryState(),
    )


def make_service(*responses):
    """Service whose provider returns ``responses`` in order."""
    provider = Mock(spec=LLMProvider)
    provider.chat.side_effect = list(responses)
    return ModelGenerationService(AIConfig(api_keys=["test-key"]), provider=provider), provider


def has_verticals(model: StructuralModel) -> bool:
    for member in model.members:
        a, b = model.endpoints(member)
        if a.x == b.x and a.y != b.y:
            return True
    return False


class TestAnalyzeRequest:
    """Tests for analyze_request."""

    def test_new_frame(self):
        """Test intent for a new frame request."""
        service, _ = make_service()
        ctx = service.analyze_request("3層2スパンのラーメン構造")
        assert ctx.structure_type == StructureType.FRAME
        assert (ctx.dimensions.layers, ctx.dimensions.spans) == (3, 2)
        assert ctx.truss_type is None
        assert not ctx.is_edit

    def test_truss_type_only_for_trusses(self):
        """Test truss pattern is detected for truss requests."""
        service, _ = make_service()
        assert service.analyze_request("ワーレントラス").truss_type == TrussType.WARREN

    def test_stated_geometry(self):
        """Test span, height and rise are read from the request."""
        service, _ = make_service()
        ctx = service.analyze_request("アーチ スパン20m ライズ5m")
        assert (ctx.span_length, ctx.rise) == (20.0, 5.0)
        assert ctx.height is None

    def test_current_model_ignored_in_new_mode(self, two_by_one_frame):
        """Test the current model only matters in edit mode."""
        service, _ = make_service()
        ctx = service.analyze_request("2階部分を追加", mode="new", current_model=two_by_one_frame)
        assert ctx.current_model is None
        assert not ctx.addition_mode


class TestGenerateNewModel:
    """Tests for new-model generation."""

    def test_valid_frame_accepted(self):
        """Test a correct 3 x 2 frame is returned after one call."""
        service, provider = make_service(llm_response(frame_dict(3, 2)))
        model = service.generate_model("3層2スパンのラーメン構造")
        assert (len(model.nodes), len(model.members)) == (12, 15)
        assert provider.chat.call_count == 1

    def test_boundaries_normalized(self):
        """Test long-form supports come back as single letters."""
        data = frame_dict(3, 2)
        for node in data["nodes"][:3]:
            node["s"] = "fixed"
        service, _ = make_service(llm_response(data))
        model = service.generate_model("3層2スパンのラーメン構造")
        assert [n.s for n in model.nodes[:3]] == ["x", "x", "x"]

    def test_correction_accepted(self):
        """Test a valid corrected frame replaces the invalid one."""
        service, provider = make_service(
            llm_response(frame_dict(2, 2)),
            llm_response(frame_dict(3, 2, span=5.0)),
        )
        model = service.generate_model("3層2スパンのラーメン構造")
        assert model.unique_x() == [0.0, 5.0, 10.0]
        assert provider.chat.call_count == 2

    def test_frame_falls_back_to_procedural(self):
        """Test a twice-wrong frame is replaced by the procedural grid."""
        service, _ = make_service(llm_response(frame_dict(2, 2)), llm_response(frame_dict(2, 2)))
        model = service.generate_model("3層2スパンのラーメン構造")
        assert (len(model.nodes), len(model.members)) == (12, 15)
        assert model.unique_x() == [0.0, 7.0, 14.0]

    def test_correction_uses_last_key_and_correction_policy(self):
        """Test the correction call continues with the key that succeeded."""
        service, provider = make_service(
            llm_response(frame_dict(2, 2), retry_state=RetryState(attempt=1, key_index=1)),
            llm_response(frame_dict(3, 2)),
        )
        service.generate_model("3層2スパンのラーメン構造")
        kwargs = provider.chat.call_args_list[1].kwargs
        assert kwargs["state"] == RetryState(attempt=0, key_index=1)
        assert kwargs["policy"] == service.config.correction_policy

    def test_correction_call_failure_falls_back(self):
        """Test a failing correction call still yields the procedural frame."""
        service, _ = make_service(
            llm_response(frame_dict(2, 2)),
            LLMProviderError("Request failed"),
        )
        model = service.generate_model("3層2スパンのラーメン構造")
        assert len(model.nodes) == 12

    def test_truss_prompts_carry_stated_span(self):
        """Test the generation and correction prompts restate a 15 m span."""
        service, provider = make_service(llm_response(PRATT_TRUSS), llm_response(PRATT_TRUSS))
        service.generate_model("プラットトラス 高さ3m スパン15m")
        system_prompt = provider.chat.call_args_list[0].kwargs["messages"][0].content
        correction = provider.chat.call_args_list[1].kwargs["messages"][1].content
        assert "to x=15 (roller" in system_prompt
        assert "to x=15 (roller" in correction

    def test_warren_with_verticals_replaced(self):
        """Test a Warren request answered with verticals ends without verticals."""
        service, _ = make_service(llm_response(PRATT_TRUSS), llm_response(PRATT_TRUSS))
        model = service.generate_model("ワーレントラス 高さ3m スパン12m")
        assert not has_verticals(model)
        assert model.nodes[0].s == "p"
        assert max(n.x for n in model.nodes) == 12.0

    def test_truss_members_pin_jointed(self):
        """Test accepted truss members are pin-pin."""
        service, _ = make_service(llm_response(PRATT_TRUSS))
        model = service.generate_model("プラットトラス 高さ3m スパン12m")
        assert all(m.i_conn.value == "pin" and m.j_conn.value == "pin" for m in model.members)

    def test_unparseable_portal(self):
        """Test prose-only output for a portal frame uses the procedural portal."""
        service, provider = make_service(llm_response("申し訳ありませんが、作成できません。"))
        model = service.generate_model("門型ラーメン 高さ3m スパン5m")
        assert [m.pair for m in model.members] == [(1, 2), (2, 3), (3, 4)]
        assert max(n.x for n in model.nodes) == 5.0
        assert max(n.y for n in model.nodes) == 3.0
        assert provider.chat.call_count == 1

    def test_unparseable_warren(self):
        """Test prose-only output for a Warren request uses the Warren generator."""
        service, _ = make_service(llm_response("sorry, I cannot do that"))
        model = service.generate_model("ワーレントラス 高さ3m スパン15m")
        assert not has_verticals(model)
        assert max(n.x for n in model.nodes) == 15.0
        assert max(n.y for n in model.nodes) == 3.0

    def test_unparseable_pratt_uses_minimal_truss(self):
        """Test other truss types fall back to the minimal truss."""
        service, _ = make_service(llm_response("sorry, I cannot do that"))
        model = service.generate_model("プラットトラス 高さ3m スパン12m")
        assert (len(model.nodes), len(model.members)) == (4, 6)

    def test_unparseable_basic(self):
        """Test unrecognised requests fall back to a 2 x 2 frame."""
        service, _ = make_service(llm_response("no json"))
        model = service.generate_model("何か作って")
        assert (len(model.nodes), len(model.members)) == (9, 10)

    def test_generation_failure_propagates(self):
        """Test exhausted generation retries reach the caller."""
        service, _ = make_service(LLMProviderError("Request failed after 4 attempts"))
        with pytest.raises(LLMProviderError):
            service.generate_model("3層2スパンのラーメン構造")

    def test_validator_fault_fails_open(self):
        """Test a crashing validator leaves the model unchanged."""
        service, provider = make_service(llm_response(frame_dict(2, 2)))
        with patch("src.ai.model_service.validate_structure", side_effect=RuntimeError("boom")):
            model = service.generate_model("3層2スパンのラーメン構造")
        assert len(model.nodes) == 9
        assert provider.chat.call_count == 1


class TestGenerateEdit:
    """Tests for edit-mode generation."""

    @pytest.fixture
    def current(self):
        model = StructuralModel.from_dict(frame_dict(1, 2))
        model.node_loads = [NodeLoad(n=5, fx=10.0, fy=0.0)]
        return model

    def test_add_floor_preserves_supports_and_loads(self, current):
        """Test bases the LLM changed are restored and the load stays on its node."""
        generated = frame_dict(2, 2)
        for node in generated["nodes"][:3]:
            node["s"] = "p"
        service, _ = make_service(llm_response(generated))
        model = service.generate_model("2階部分を追加", mode="edit", current_model=current)
        assert (len(model.nodes), len(model.members)) == (9, 10)
        assert [n.s for n in model.nodes[:3]] == ["x", "x", "x"]
        assert model.node_loads == [NodeLoad(n=5, fx=10.0, fy=0.0)]

    def test_column_base_change(self, current):
        """Test a requested column-base change is applied."""
        service, _ = make_service(llm_response(frame_dict(1, 2)))
        model = service.generate_model("柱脚をピンに変更", mode="edit", current_model=current)
        assert [n.s for n in model.nodes if n.y == 0] == ["p", "p", "p"]

    def test_current_model_not_mutated(self, current):
        """Test the edited model is a new object."""
        service, _ = make_service(llm_response(frame_dict(1, 2)))
        before = current.copy()
        service.generate_model("荷重を全て削除", mode="edit", current_model=current)
        assert current == before

    def test_preservation_fault_fails_open(self, current):
        """Test a crashing preservation pass keeps the generated model."""
        service, _ = make_service(llm_response(frame_dict(2, 2)))
        with patch("src.ai.model_service.preserve_load_data", side_effect=RuntimeError("boom")):
            model = service.generate_model("2階部分を追加", mode="edit", current_model=current)
        assert model.node_loads == []
