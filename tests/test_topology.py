"""
Unit tests for the topology validator.

Tests cover:
- Accumulated node, member and load reference errors
- Repairs carried by fixed_model (dropped members, free supports, remapped loads)
- Unusable coordinates raising ModelParseError
- Span-count cross-check and its truss/arch/beam skip rules
"""

import pytest

from src.core.data_models import ModelParseError
from src.fem.topology import validate_node_references, validate_span_count

from conftest import build_model, frame_dict


class TestValidateNodeReferences:
    """Tests for validate_node_references."""

    def test_valid_frame(self):
        """Test a regular frame passes."""
        result = validate_node_references(frame_dict(layers=2, spans=2))
        assert result.is_valid
        assert result.errors == []
        assert len(result.fixed_model.members) == 10

    def test_out_of_range_member_dropped(self):
        """Test member referencing node 9 in a 4-node model."""
        data = frame_dict(layers=1, spans=1)
        data["members"].append({"i": 1, "j": 9})
        result = validate_node_references(data)
        assert not result.is_valid
        assert any("does not exist" in e for e in result.errors)
        assert len(result.fixed_model.members) == 3

    def test_self_loop_dropped(self):
        """Test member with i == j."""
        data = frame_dict(layers=1, spans=1)
        data["members"].append({"i": 2, "j": 2})
        result = validate_node_references(data)
        assert any("both 2" in e for e in result.errors)
        assert len(result.fixed_model.members) == 3

    def test_missing_member_keys(self):
        """Test member without j."""
        data = frame_dict(layers=1, spans=1)
        data["members"].append({"i": 1})
        result = validate_node_references(data)
        assert any("missing property" in e for e in result.errors)

    def test_invalid_boundary_becomes_free(self):
        """Test unknown support letter is reported and replaced."""
        data = frame_dict(layers=1, spans=1)
        data["nodes"][2]["s"] = "z"
        result = validate_node_references(data)
        assert any("invalid boundary condition" in e for e in result.errors)
        assert result.fixed_model.nodes[2].s == "f"

    def test_long_form_boundary_accepted(self):
        """Test "fixed" is a valid spelling."""
        data = frame_dict(layers=1, spans=1)
        data["nodes"][0]["s"] = "fixed"
        assert validate_node_references(data).is_valid

    def test_missing_node_property_reported(self):
        """Test node without s is reported but kept."""
        data = frame_dict(layers=1, spans=1)
        del data["nodes"][3]["s"]
        result = validate_node_references(data)
        assert any("missing property 's'" in e for e in result.errors)
        assert len(result.fixed_model.nodes) == 4

    def test_non_numeric_coordinates_raise(self):
        """Test unusable node list raises."""
        data = {"nodes": [{"x": "left", "y": 0, "s": "x"}], "members": []}
        with pytest.raises(ModelParseError):
            validate_node_references(data)

    def test_errors_accumulate(self):
        """Test several problems are reported in one pass."""
        data = frame_dict(layers=1, spans=1)
        data["members"] += [{"i": 1, "j": 7}, {"i": 3, "j": 3}]
        data["nodeLoads"] = [{"n": 12, "fx": 5, "fy": 0}]
        result = validate_node_references(data)
        assert len(result.errors) >= 3

    def test_node_load_out_of_range_dropped(self):
        """Test load on a missing node."""
        data = frame_dict(layers=1, spans=1)
        data["nodeLoads"] = [{"n": 3, "fx": 10, "fy": 0}, {"n": 10, "fx": 5, "fy": 0}]
        result = validate_node_references(data)
        assert [l.n for l in result.fixed_model.node_loads] == [3]

    def test_member_loads_follow_surviving_members(self):
        """Test member loads are renumbered after an invalid member is dropped."""
        data = frame_dict(layers=1, spans=1)
        data["members"].insert(0, {"i": 1, "j": 99})
        data["memberLoads"] = [{"m": 4, "q": -10}, {"m": 1, "q": -3}]
        result = validate_node_references(data)
        loads = result.fixed_model.member_loads
        assert len(loads) == 1
        assert loads[0].m == 3
        assert loads[0].q == -10


class TestValidateSpanCount:
    """Tests for validate_span_count."""

    def test_regular_frame(self, two_layer_frame):
        """Test consistent frame passes."""
        assert validate_span_count(two_layer_frame).is_valid

    def test_uneven_layer(self):
        """Test upper layer with fewer nodes than the ground layer."""
        model = build_model(
            [(0, 0, "x"), (6, 0, "x"), (12, 0, "x"), (0, 3, "f"), (6, 3, "f")],
            [(1, 4), (2, 5), (4, 5)],
        )
        result = validate_span_count(model)
        assert not result.is_valid
        assert any("expected 3" in e for e in result.errors)

    def test_member_count_mismatch(self):
        """Test a 2-span frame missing one beam."""
        model = build_model(
            [(0, 0, "x"), (6, 0, "x"), (12, 0, "x"), (0, 3, "f"), (6, 3, "f"), (12, 3, "f")],
            [(1, 4), (2, 5), (3, 6), (4, 5)],
        )
        result = validate_span_count(model)
        assert not result.is_valid
        assert any("expected 5" in e for e in result.errors)

    def test_truss_skipped(self):
        """Test pin/roller ground supports skip the check."""
        model = build_model(
            [(0, 0, "p"), (3, 0, "f"), (6, 0, "r"), (1.5, 3, "f"), (4.5, 3, "f")],
            [(1, 2), (2, 3), (4, 5), (1, 4), (4, 2), (2, 5), (5, 3)],
        )
        assert validate_span_count(model).is_valid

    def test_beam_skipped(self):
        """Test single-row layouts skip the check."""
        model = build_model(
            [(0, 0, "p"), (3, 0, "f"), (6, 0, "f"), (9, 0, "p")],
            [(1, 2), (2, 3), (3, 4)],
        )
        assert validate_span_count(model).is_valid

    def test_small_model_skipped(self, portal_model):
        """Test models below 4 nodes / 3 members are not checked."""
        portal_model.members.pop()
        assert validate_span_count(portal_model).is_valid
