"""
Unit tests for the structure-type validators.

Tests cover:
- Beam rules for cantilevers and simple/continuous beams
- Truss chord supports, Warren/Pratt vertical rules, Pratt/Howe diagonal direction
- King-post counts and geometry fallback to model extents
- Frame count thresholds, addition-mode exact counts, ground members, portal order
- Dispatch by structure type
"""

import pytest

from src.core.data_models import StructuralModel, StructureDimensions, StructureType, TrussType
from src.fem.builders import generate_warren_truss
from src.fem.structure_validators import (
    validate_beam_structure,
    validate_frame_structure,
    validate_portal_frame,
    validate_structure,
    validate_truss_structure,
)

from conftest import build_model, frame_dict

PANEL_NODES = [
    (0, 0, "p"), (3, 0, "f"), (6, 0, "f"), (9, 0, "f"), (12, 0, "r"),
    (0, 3, "f"), (3, 3, "f"), (6, 3, "f"), (9, 3, "f"), (12, 3, "f"),
]
CHORDS = [(1, 2), (2, 3), (3, 4), (4, 5), (6, 7), (7, 8), (8, 9), (9, 10)]
VERTICALS = [(1, 6), (2, 7), (3, 8), (4, 9), (5, 10)]
PRATT_DIAGONALS = [(6, 2), (7, 3), (9, 3), (10, 4)]
HOWE_DIAGONALS = [(1, 7), (2, 8), (8, 4), (9, 5)]


def pratt_truss():
    return build_model(PANEL_NODES, CHORDS + VERTICALS + PRATT_DIAGONALS)


def howe_truss():
    return build_model(PANEL_NODES, CHORDS + VERTICALS + HOWE_DIAGONALS)


class TestBeamValidator:
    """Tests for validate_beam_structure."""

    def test_simple_beam_valid(self):
        """Test pins at both ends with a free midspan node."""
        model = build_model([(0, 0, "p"), (3, 0, "f"), (6, 0, "p")], [(1, 2), (2, 3)])
        assert validate_beam_structure(model, "単純梁 スパン6m").is_valid

    def test_intermediate_support_rejected(self):
        """Test intermediate supported node on a simple beam."""
        model = build_model([(0, 0, "p"), (3, 0, "p"), (6, 0, "p")], [(1, 2), (2, 3)])
        result = validate_beam_structure(model, "単純梁")
        assert not result.is_valid
        assert result.needs_ai_correction
        assert any("intermediate beam nodes must be free" in e for e in result.errors)
        assert any("free intermediate node" in e for e in result.errors)

    def test_cantilever_valid(self):
        """Test one fixed end and one free end."""
        model = build_model([(0, 0, "x"), (4, 0, "f")], [(1, 2)])
        assert validate_beam_structure(model, "片持ち梁 長さ4m").is_valid

    def test_cantilever_with_pin_rejected(self):
        """Test pin support on a cantilever."""
        model = build_model([(0, 0, "x"), (4, 0, "p")], [(1, 2)])
        result = validate_beam_structure(model, "片持ち梁")
        assert any("must not have pin/roller" in e for e in result.errors)

    def test_orphan_node(self):
        """Test unconnected node is reported."""
        model = build_model([(0, 0, "p"), (3, 0, "f"), (6, 0, "p"), (9, 0, "f")], [(1, 2), (2, 3)])
        result = validate_beam_structure(model, "連続梁")
        assert any("not connected" in e for e in result.errors)

    def test_too_small(self):
        """Test single-node beam."""
        model = build_model([(0, 0, "p")], [])
        assert not validate_beam_structure(model, "単純梁").is_valid


class TestTrussValidator:
    """Tests for validate_truss_structure."""

    def test_generated_warren_valid(self):
        """Test the procedural Warren truss satisfies the Warren rules."""
        model = generate_warren_truss(height=3.0, span_length=12.0)
        result = validate_truss_structure(model, "ワーレントラス 高さ3m スパン12m", TrussType.WARREN)
        assert result.is_valid, result.errors

    def test_warren_rejects_verticals(self):
        """Test any vertical member fails a Warren truss."""
        result = validate_truss_structure(pratt_truss(), "ワーレントラス 高さ3m スパン12m", TrussType.WARREN)
        assert not result.is_valid
        assert any("must not have vertical members" in e for e in result.errors)

    def test_pratt_valid(self):
        """Test verticals with diagonals sloping toward midspan."""
        result = validate_truss_structure(pratt_truss(), "プラットトラス 高さ3m スパン12m", TrussType.PRATT)
        assert result.is_valid, result.errors

    def test_pratt_requires_verticals(self):
        """Test Pratt truss without verticals."""
        model = build_model(PANEL_NODES, CHORDS + PRATT_DIAGONALS)
        result = validate_truss_structure(model, "プラットトラス 高さ3m スパン12m", TrussType.PRATT)
        assert any("needs vertical members" in e for e in result.errors)

    def test_pratt_rejects_howe_diagonals(self):
        """Test diagonals sloping toward the supports fail a Pratt truss."""
        result = validate_truss_structure(howe_truss(), "プラットトラス 高さ3m スパン12m", TrussType.PRATT)
        assert any("slope down toward midspan" in e for e in result.errors)

    def test_howe_valid(self):
        """Test Howe layout with outward diagonals."""
        result = validate_truss_structure(howe_truss(), "ハウトラス 高さ3m スパン12m", TrussType.HOWE)
        assert result.is_valid, result.errors

    def test_howe_rejects_pratt_diagonals(self):
        """Test Howe truss without any outward diagonal."""
        result = validate_truss_structure(pratt_truss(), "ハウトラス 高さ3m スパン12m", TrussType.HOWE)
        assert any("toward the supports" in e for e in result.errors)

    def test_end_supports(self):
        """Test left end must be a pin and right end a roller."""
        model = pratt_truss()
        model.nodes[0].s = "x"
        model.nodes[4].s = "p"
        result = validate_truss_structure(model, "プラットトラス 高さ3m スパン12m", TrussType.PRATT)
        assert any("Left end node 1 must be a pin" in e for e in result.errors)
        assert any("Right end node 5 must be a roller" in e for e in result.errors)

    def test_top_chord_support_rejected(self):
        """Test supported top-chord node."""
        model = pratt_truss()
        model.nodes[7].s = "p"
        result = validate_truss_structure(model, "プラットトラス 高さ3m スパン12m", TrussType.PRATT)
        assert any("Top-chord node 8" in e for e in result.errors)

    def test_geometry_from_model_extents(self):
        """Test span and height fall back to the model when the prompt has none."""
        result = validate_truss_structure(pratt_truss(), "プラットトラス", TrussType.PRATT)
        assert result.is_valid, result.errors

    def test_kingpost(self):
        """Test 4-node / 5-member king-post truss."""
        model = build_model(
            [(0, 0, "p"), (6, 0, "f"), (12, 0, "r"), (6, 3, "f")],
            [(1, 2), (2, 3), (1, 4), (4, 3), (2, 4)],
        )
        result = validate_truss_structure(model, "キングポストトラス スパン12m 高さ3m", TrussType.KINGPOST)
        assert result.is_valid, result.errors

    def test_kingpost_without_post(self):
        """Test a king-post truss whose top node is off the middle bottom node."""
        model = build_model(
            [(0, 0, "p"), (4, 0, "f"), (12, 0, "r"), (6, 3, "f")],
            [(1, 2), (2, 3), (1, 4), (4, 3), (2, 4)],
        )
        result = validate_truss_structure(model, "キングポストトラス スパン12m 高さ3m", TrussType.KINGPOST)
        assert not result.is_valid
        assert any("needs a vertical king post" in e for e in result.errors)

    def test_kingpost_extra_vertical(self):
        """Test more than one vertical member fails a king-post truss."""
        model = build_model(
            [(0, 0, "p"), (6, 0, "f"), (12, 0, "r"), (6, 3, "f")],
            [(1, 2), (2, 3), (1, 4), (4, 3), (2, 4), (4, 2)],
        )
        result = validate_truss_structure(model, "キングポストトラス スパン12m 高さ3m", TrussType.KINGPOST)
        assert any("exactly 1 vertical member, got 2" in e for e in result.errors)

    def test_curved_warren_rejects_short_verticals(self):
        """Test verticals to lowered top-chord nodes fail a curved Warren truss."""
        model = build_model(
            [
                (0, 0, "p"), (3, 0, "f"), (6, 0, "f"), (9, 0, "f"), (12, 0, "r"),
                (3, 2.25, "f"), (6, 3, "f"), (9, 2.25, "f"),
            ],
            [
                (1, 2), (2, 3), (3, 4), (4, 5), (6, 7), (7, 8),
                (1, 6), (8, 5), (6, 3), (3, 8), (2, 6), (4, 8),
            ],
        )
        result = validate_truss_structure(model, "曲弦ワーレントラス スパン12m", TrussType.CURVED_WARREN)
        assert any(
            "must not have vertical members; found 2" in e and "(2, 6)" in e
            for e in result.errors
        )

    def test_duplicate_pairs_reported(self):
        """Test repeated node pairs."""
        model = build_model(PANEL_NODES, CHORDS + VERTICALS + PRATT_DIAGONALS + [(2, 1)])
        result = validate_truss_structure(model, "プラットトラス 高さ3m スパン12m", TrussType.PRATT)
        assert any("Duplicate members" in e for e in result.errors)


class TestFrameValidator:
    """Tests for validate_frame_structure."""

    def test_regular_frame_valid(self):
        """Test 3 x 2 frame against 3 x 2 dimensions."""
        model = StructuralModel.from_dict(frame_dict(layers=3, spans=2))
        result = validate_frame_structure(model, "3層2スパン", StructureDimensions(3, 2))
        assert result.is_valid, result.errors

    def test_too_small_rejected(self, two_layer_frame):
        """Test counts below the ratio thresholds."""
        result = validate_frame_structure(two_layer_frame, "3層2スパン", StructureDimensions(3, 2))
        assert not result.is_valid
        assert any("Too few nodes" in e for e in result.errors)
        assert any("Too few members" in e for e in result.errors)

    def test_small_deviation_tolerated(self, two_layer_frame):
        """Test one missing beam passes outside addition mode."""
        two_layer_frame.members.pop()
        result = validate_frame_structure(two_layer_frame, "2層2スパン", StructureDimensions(2, 2))
        assert result.is_valid

    def test_addition_mode_requires_exact_counts(self, two_layer_frame, two_by_one_frame):
        """Test the same deviation fails when adding a floor."""
        two_layer_frame.members.pop()
        result = validate_frame_structure(
            two_layer_frame, "2階部分を追加", StructureDimensions(2, 2),
            current_model=two_by_one_frame,
        )
        assert not result.is_valid
        assert any("Addition needs exactly 10 members" in e for e in result.errors)

    def test_custom_thresholds(self, two_layer_frame):
        """Test thresholds are configurable."""
        two_layer_frame.members.pop()
        result = validate_frame_structure(
            two_layer_frame, "2層2スパン", StructureDimensions(2, 2),
            member_ratio_threshold=1.0,
        )
        assert not result.is_valid

    def test_ground_member_rejected(self, two_by_one_frame):
        """Test member along y=0."""
        two_by_one_frame.members[0].j = 2
        result = validate_frame_structure(two_by_one_frame, "1層2スパン", StructureDimensions(1, 2))
        assert any("ground line" in e for e in result.errors)

    def test_unsupported_base_rejected(self, two_by_one_frame):
        """Test free node on the ground line."""
        two_by_one_frame.nodes[1].s = "f"
        result = validate_frame_structure(two_by_one_frame, "1層2スパン", StructureDimensions(1, 2))
        assert any("have no support" in e for e in result.errors)


class TestPortalValidator:
    """Tests for validate_portal_frame."""

    def test_valid(self, portal_model):
        """Test canonical member order."""
        dims = StructureDimensions(1, 1, is_portal_frame=True)
        assert validate_frame_structure(portal_model, "門型ラーメン", dims).is_valid

    def test_wrong_order(self, portal_model):
        """Test beam listed first."""
        portal_model.members.reverse()
        result = validate_portal_frame(portal_model)
        assert any("1-2, 2-3, 3-4" in e for e in result.errors)

    def test_wrong_counts(self, two_by_one_frame):
        """Test a 6-node frame is not a portal."""
        result = validate_portal_frame(two_by_one_frame)
        assert any("exactly 4 nodes" in e for e in result.errors)


class TestValidateStructure:
    """Tests for validate_structure dispatch."""

    def test_arch_not_checked(self):
        """Test arch models pass unchecked."""
        model = build_model([(0, 0, "p"), (5, 3, "f"), (10, 0, "p")], [(1, 2), (2, 3)])
        result = validate_structure(model, "アーチ", StructureType.ARCH, StructureDimensions())
        assert result.is_valid
        assert result.fixed_model is model

    @pytest.mark.parametrize("structure_type", [StructureType.FRAME, StructureType.BEAM])
    def test_dispatch_reports_errors(self, structure_type):
        """Test frame and beam rules run through the dispatcher."""
        model = build_model([(0, 0, "f")], [])
        result = validate_structure(model, "", structure_type, StructureDimensions(1, 1))
        assert not result.is_valid
