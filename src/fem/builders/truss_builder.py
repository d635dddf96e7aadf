"""
TrussBuilder - procedural generation of pin-jointed trusses.

All generated trusses are simply supported: pin at the left bottom-chord end,
roller at the right, every member pin-pin.
"""

import logging

import numpy as np

from src.core.constants import (
    DEFAULT_SECTION_NAME,
    DEFAULT_WARREN_PANELS,
)
from src.core.data_models import (
    BoundaryCode,
    ConnectionType,
    Member,
    Node,
    StructuralModel,
)

logger = logging.getLogger(__name__)


def _pin_member(i: int, j: int) -> Member:
    return Member(
        i=i, j=j,
        name=DEFAULT_SECTION_NAME,
        i_conn=ConnectionType.PIN,
        j_conn=ConnectionType.PIN,
    )


def _bottom_support(index: int, count: int) -> str:
    if index == 0:
        return BoundaryCode.PIN.value
    if index == count - 1:
        return BoundaryCode.ROLLER.value
    return BoundaryCode.FREE.value


def generate_warren_truss(
    height: float,
    span_length: float,
    panels: int = DEFAULT_WARREN_PANELS,
) -> StructuralModel:
    """Warren truss without verticals.

    Bottom chord nodes 1..panels+1 sit at panel points; top chord nodes sit
    above panel midpoints and are joined to the bottom chord by zig-zag
    diagonals.
    """
    panels = max(1, int(panels))
    bottom_x = np.linspace(0.0, span_length, panels + 1)
    top_x = (bottom_x[:-1] + bottom_x[1:]) / 2.0

    nodes = [
        Node(x=round(float(x), 6), y=0.0, s=_bottom_support(k, len(bottom_x)))
        for k, x in enumerate(bottom_x)
    ]
    nodes += [Node(x=round(float(x), 6), y=height, s=BoundaryCode.FREE.value) for x in top_x]

    first_top = len(bottom_x) + 1
    members = [_pin_member(k, k + 1) for k in range(1, len(bottom_x))]
    members += [_pin_member(first_top + k, first_top + k + 1) for k in range(len(top_x) - 1)]
    for k in range(panels):
        top = first_top + k
        members.append(_pin_member(k + 1, top))
        members.append(_pin_member(top, k + 2))

    logger.info(f"Generated Warren truss: {len(nodes)} nodes, {len(members)} members")
    return StructuralModel(nodes=nodes, members=members)


def minimal_truss() -> StructuralModel:
    """Fallback 4-node / 6-member truss."""
    nodes = [
        Node(x=0.0, y=0.0, s=BoundaryCode.PIN.value),
        Node(x=7.5, y=0.0, s=BoundaryCode.ROLLER.value),
        Node(x=0.0, y=3.0, s=BoundaryCode.FREE.value),
        Node(x=7.5, y=3.0, s=BoundaryCode.FREE.value),
    ]
    members = [_pin_member(i, j) for i, j in ((1, 2), (3, 4), (1, 3), (2, 4), (1, 4), (2, 3))]
    return StructuralModel(nodes=nodes, members=members)


__all__ = [
    "generate_warren_truss",
    "minimal_truss",
]
