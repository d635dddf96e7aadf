import sys
from pathlib import Path
from typing import List, Sequence, Tuple

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.core.data_models import Member, Node, StructuralModel


def build_model(
    nodes: Sequence[Tuple[float, float, str]],
    pairs: Sequence[Tuple[int, int]],
) -> StructuralModel:
    """Model from (x, y, s) triples and 1-based member pairs."""
    return StructuralModel(
        nodes=[Node(x=x, y=y, s=s) for x, y, s in nodes],
        members=[Member(i=i, j=j) for i, j in pairs],
    )


def frame_dict(layers: int, spans: int, span: float = 6.0, height: float = 3.5) -> dict:
    """JSON form of a regular frame, numbered row by row from the ground."""
    per_row = spans + 1
    nodes: List[dict] = []
    for level in range(layers + 1):
        for col in range(per_row):
            nodes.append({"x": col * span, "y": level * height, "s": "x" if level == 0 else "f"})
    members: List[dict] = []
    for col in range(per_row):
        for level in range(layers):
            members.append({"i": level * per_row + col + 1, "j": (level + 1) * per_row + col + 1})
    for level in range(1, layers + 1):
        for s in range(spans):
            left = level * per_row + s + 1
            members.append({"i": left, "j": left + 1})
    return {"nodes": nodes, "members": members, "nodeLoads": [], "memberLoads": []}


@pytest.fixture
def portal_model() -> StructuralModel:
    """4-node portal frame with fixed bases."""
    return build_model(
        [(0, 0, "x"), (0, 3, "f"), (5, 3, "f"), (5, 0, "x")],
        [(1, 2), (2, 3), (3, 4)],
    )


@pytest.fixture
def two_by_one_frame() -> StructuralModel:
    """1 layer x 2 spans, fixed bases."""
    return StructuralModel.from_dict(frame_dict(layers=1, spans=2))


@pytest.fixture
def two_layer_frame() -> StructuralModel:
    """2 layers x 2 spans, fixed bases."""
    return StructuralModel.from_dict(frame_dict(layers=2, spans=2))
