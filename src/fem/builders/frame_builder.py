"""
FrameBuilder - procedural generation of regular frame grids.

Used when the LLM cannot produce a valid frame. Node numbering is layer-major
(ground row first, left to right), members are all columns first and then
all beams, so ``members = columns + beams`` holds by construction.
"""

import logging
from typing import Optional

import numpy as np

from src.core.constants import (
    DEFAULT_PORTAL_HEIGHT,
    DEFAULT_PORTAL_SPAN,
    DEFAULT_SPAN_LENGTH,
    DEFAULT_STORY_HEIGHT,
    DEFAULT_SECTION_NAME,
)
from src.core.data_models import (
    BoundaryCode,
    Member,
    Node,
    StructuralModel,
    StructureDimensions,
)

logger = logging.getLogger(__name__)


def _reference_grid(reference_model: Optional[StructuralModel]):
    """Span length and story height taken from an existing model."""
    span_length, story_height = DEFAULT_SPAN_LENGTH, DEFAULT_STORY_HEIGHT
    if reference_model is None or not reference_model.nodes:
        return span_length, story_height

    unique_x = np.unique([n.x for n in reference_model.nodes])
    unique_y = np.unique([n.y for n in reference_model.nodes])
    if len(unique_x) > 1:
        span_length = float(np.min(np.diff(unique_x)))
    if len(unique_y) > 1:
        story_height = float(unique_y[1] - unique_y[0])
    return span_length, story_height


def generate_correct_frame_structure(
    layers: int,
    spans: int,
    reference_model: Optional[StructuralModel] = None,
) -> StructuralModel:
    """Build a regular ``layers`` x ``spans`` rigid frame.

    Args:
        layers: Number of stories (>= 1)
        spans: Number of bays (>= 1)
        reference_model: Existing model to take span length and story
            height from; defaults are 7.0 m and 3.2 m

    Returns:
        Model with (layers+1)(spans+1) nodes and layers(2*spans+1) members
    """
    layers, spans = max(1, int(layers)), max(1, int(spans))
    span_length, story_height = _reference_grid(reference_model)
    per_row = spans + 1

    nodes = []
    for level in range(layers + 1):
        for col in range(per_row):
            support = BoundaryCode.FIXED if level == 0 else BoundaryCode.FREE
            nodes.append(Node(
                x=round(col * span_length, 6),
                y=round(level * story_height, 6),
                s=support.value,
            ))

    members = []
    for col in range(per_row):
        for level in range(layers):
            lower = level * per_row + col + 1
            upper = (level + 1) * per_row + col + 1
            members.append(Member(i=lower, j=upper, name=DEFAULT_SECTION_NAME))

    for level in range(1, layers + 1):
        for span in range(spans):
            left = level * per_row + span + 1
            members.append(Member(i=left, j=left + 1, name=DEFAULT_SECTION_NAME))

    logger.info(
        f"Generated frame: {layers} layers x {spans} spans, "
        f"{len(nodes)} nodes, {len(members)} members"
    )
    return StructuralModel(nodes=nodes, members=members)


def generate_portal_frame(
    height: float = DEFAULT_PORTAL_HEIGHT,
    span: float = DEFAULT_PORTAL_SPAN,
) -> StructuralModel:
    """Portal frame numbered left base, left top, right top, right base."""
    nodes = [
        Node(x=0.0, y=0.0, s=BoundaryCode.FIXED.value),
        Node(x=0.0, y=height, s=BoundaryCode.FREE.value),
        Node(x=span, y=height, s=BoundaryCode.FREE.value),
        Node(x=span, y=0.0, s=BoundaryCode.FIXED.value),
    ]
    members = [
        Member(i=1, j=2, name=DEFAULT_SECTION_NAME),
        Member(i=2, j=3, name=DEFAULT_SECTION_NAME),
        Member(i=3, j=4, name=DEFAULT_SECTION_NAME),
    ]
    return StructuralModel(nodes=nodes, members=members)


def generate_basic_structure(dimensions: Optional[StructureDimensions] = None) -> StructuralModel:
    """Fallback for unrecognised requests: a regular frame, 2 x 2 by default."""
    layers = dimensions.layers if dimensions and dimensions.layers > 1 else 2
    spans = dimensions.spans if dimensions and dimensions.spans > 1 else 2
    return generate_correct_frame_structure(layers, spans)


def minimal_frame() -> StructuralModel:
    """Last-resort 4-node / 3-member frame."""
    nodes = [
        Node(x=0.0, y=0.0, s=BoundaryCode.FIXED.value),
        Node(x=6.0, y=0.0, s=BoundaryCode.FIXED.value),
        Node(x=0.0, y=3.5, s=BoundaryCode.FREE.value),
        Node(x=6.0, y=3.5, s=BoundaryCode.FREE.value),
    ]
    members = [Member(i=1, j=3), Member(i=2, j=4), Member(i=3, j=4)]
    return StructuralModel(nodes=nodes, members=members)


__all__ = [
    "generate_correct_frame_structure",
    "generate_portal_frame",
    "generate_basic_structure",
    "minimal_frame",
]
