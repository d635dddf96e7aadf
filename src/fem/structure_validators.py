"""
Structure-type validators for beams, trusses and frames.

Each validator checks the domain rules of one structure family and returns a
ValidationResult. They do not repair the model: errors are fed back to the
LLM through a correction prompt, and the orchestrator decides what to do
when a validator itself fails.

Arch and "basic" structures are not rule-checked; arch geometry varies too
much and basic requests are left to the LLM.
"""

import logging
from collections import Counter
from typing import List, Optional, Tuple

from src.ai.intent_detector import (
    detect_addition_mode,
    detect_truss_type,
    extract_height_from_prompt,
    extract_span_length_from_prompt,
)
from src.core.constants import (
    DEFAULT_TRUSS_HEIGHT,
    DEFAULT_TRUSS_SPAN,
    FRAME_MEMBER_RATIO_THRESHOLD,
    FRAME_NODE_RATIO_THRESHOLD,
    TRUSS_COORD_TOLERANCE,
)
from src.core.data_models import (
    BoundaryCode,
    Member,
    Node,
    StructuralModel,
    StructureDimensions,
    StructureType,
    TrussType,
    ValidationResult,
)
from src.fem.topology import validate_span_count

logger = logging.getLogger(__name__)

CANTILEVER_KEYWORDS = ("片持ち", "キャンチレバー", "cantilever")


def _orphan_nodes(model: StructuralModel) -> List[int]:
    referenced = set()
    for member in model.members:
        referenced.update((member.i, member.j))
    return [i for i in range(1, len(model.nodes) + 1) if i not in referenced]


def _duplicate_pairs(model: StructuralModel) -> List[Tuple[int, int]]:
    counts = Counter(m.pair for m in model.members)
    return [pair for pair, count in counts.items() if count > 1]


def _result(model: StructuralModel, errors: List[str], needs_ai_correction: bool = False) -> ValidationResult:
    return ValidationResult(
        is_valid=not errors,
        errors=errors,
        fixed_model=model,
        needs_ai_correction=needs_ai_correction and bool(errors),
    )


# =============================================================================
# Beam
# =============================================================================

def validate_beam_structure(model: StructuralModel, prompt: str) -> ValidationResult:
    """Check support layout of a cantilever or simple/continuous beam."""
    errors: List[str] = []
    nodes, members = model.nodes, model.members

    if len(nodes) < 2:
        errors.append(f"Beam needs at least 2 nodes, got {len(nodes)}")
    if len(members) < 1:
        errors.append("Beam needs at least 1 member")
    if errors:
        return _result(model, errors, needs_ai_correction=True)

    supports = [n.support for n in nodes]
    fixed = supports.count(BoundaryCode.FIXED)
    pins = supports.count(BoundaryCode.PIN)
    free = supports.count(BoundaryCode.FREE)
    text = (prompt or "").lower()

    if any(k in text for k in CANTILEVER_KEYWORDS):
        if fixed != 1:
            errors.append(f"Cantilever needs exactly 1 fixed node, got {fixed}")
        if free < 1:
            errors.append("Cantilever needs at least 1 free node")
        hinged_on_ground = [
            i for i, n in enumerate(nodes, start=1)
            if n.y == 0 and n.support in (BoundaryCode.PIN, BoundaryCode.ROLLER)
        ]
        if hinged_on_ground:
            errors.append(f"Cantilever must not have pin/roller supports (nodes {hinged_on_ground})")
    else:
        if pins < 2:
            errors.append(f"Beam needs at least 2 pin supports, got {pins}")
        if free < 1:
            errors.append("Beam needs at least 1 free intermediate node")
        xs = [n.x for n in nodes]
        left_end = xs.index(min(xs)) + 1
        right_end = xs.index(max(xs)) + 1
        for index, node in enumerate(nodes, start=1):
            if index in (left_end, right_end) or node.y != 0:
                continue
            if node.is_supported:
                errors.append(
                    f"Node {index} at x={node.x}: intermediate beam nodes must be free, "
                    f"got '{node.support.value}'"
                )

    orphans = _orphan_nodes(model)
    if orphans:
        errors.append(f"Nodes not connected to any member: {orphans}")

    return _result(model, errors, needs_ai_correction=True)


# =============================================================================
# Truss
# =============================================================================

def _find_node(nodes: List[Node], x: float, y: float, tolerance: float) -> Optional[int]:
    for index, node in enumerate(nodes, start=1):
        if abs(node.x - x) < tolerance and abs(node.y - y) < tolerance:
            return index
    return None


def _truss_geometry(model: StructuralModel, prompt: str) -> Tuple[float, float]:
    """Span length and height: prompt first, then model extents, then defaults."""
    span = extract_span_length_from_prompt(prompt)
    height = extract_height_from_prompt(prompt)
    xs = [n.x for n in model.nodes]
    ys = [n.y for n in model.nodes]
    if span is None:
        span = (max(xs) - min(xs)) if xs and max(xs) > min(xs) else DEFAULT_TRUSS_SPAN
    if height is None:
        height = max(ys) if ys and max(ys) > 0 else DEFAULT_TRUSS_HEIGHT
    return span, height


def _vertical_members(model: StructuralModel, tol: float) -> List[Member]:
    """Every member with equal x and distinct y at its ends."""
    result = []
    for member in model.members:
        a, b = model.endpoints(member)
        if abs(a.x - b.x) < tol and abs(a.y - b.y) > tol:
            result.append(member)
    return result


def _verticals(model: StructuralModel, height: float, tol: float) -> List[Member]:
    """Full-height posts running from the bottom chord to ``height``."""
    result = []
    for member in model.members:
        a, b = model.endpoints(member)
        if abs(a.x - b.x) >= tol:
            continue
        low, high = sorted((a.y, b.y))
        if abs(low) < tol and abs(high - height) < tol:
            result.append(member)
    return result


def _diagonals(model: StructuralModel, tol: float) -> List[Tuple[Node, Node]]:
    """(upper, lower) endpoint pairs of every inclined member."""
    result = []
    for member in model.members:
        a, b = model.endpoints(member)
        if abs(a.x - b.x) > tol and abs(a.y - b.y) > tol:
            upper, lower = (a, b) if a.y > b.y else (b, a)
            result.append((upper, lower))
    return result


def validate_truss_structure(
    model: StructuralModel,
    prompt: str,
    truss_type: Optional[TrussType] = None,
) -> ValidationResult:
    """Check chord supports and the member pattern of the named truss type."""
    tol = TRUSS_COORD_TOLERANCE
    errors: List[str] = []
    nodes = model.nodes
    truss_type = truss_type or detect_truss_type(prompt)
    span, height = _truss_geometry(model, prompt)
    logger.debug(f"Truss check: type={truss_type.value}, span={span}, height={height}")

    bottom = [n for n in nodes if abs(n.y) < tol]
    top = [n for n in nodes if abs(n.y - height) < tol]

    if truss_type == TrussType.KINGPOST:
        if len(nodes) != 4 or len(model.members) != 5:
            errors.append(
                f"King-post truss needs 4 nodes and 5 members, got "
                f"{len(nodes)} nodes and {len(model.members)} members"
            )
        if len(bottom) != 3 or len(top) != 1:
            errors.append(
                f"King-post truss needs 3 bottom-chord nodes and 1 top node, got "
                f"{len(bottom)} and {len(top)}"
            )
        posts = _vertical_members(model, tol)
        if not posts:
            errors.append("King-post truss needs a vertical king post; none found")
        elif len(posts) > 1:
            errors.append(
                f"King-post truss must have exactly 1 vertical member, got {len(posts)} "
                f"({[m.pair for m in posts]})"
            )
    elif truss_type == TrussType.QUEENPOST:
        if len(nodes) < 4 or len(model.members) < 5:
            errors.append("Queen-post truss needs at least 4 nodes and 5 members")
        if len(bottom) < 2 or len(top) < 2:
            errors.append("Queen-post truss needs at least 2 bottom and 2 top chord nodes")
    else:
        if len(nodes) < 4 or len(model.members) < 3:
            errors.append("Truss needs at least 4 nodes and 3 members")
        if len(bottom) < 2 or len(top) < 2:
            errors.append(
                f"Truss needs at least 2 bottom and 2 top chord nodes, got "
                f"{len(bottom)} and {len(top)}"
            )

    x0 = min((n.x for n in bottom), default=0.0)
    left = _find_node(nodes, x0, 0.0, tol)
    right = _find_node(nodes, x0 + span, 0.0, tol)
    if left is None:
        errors.append(f"No bottom-chord node at the left end (x={x0}, y=0)")
    elif model.node_at(left).support != BoundaryCode.PIN:
        errors.append(f"Left end node {left} must be a pin (p), got '{model.node_at(left).s}'")
    if right is None:
        errors.append(f"No bottom-chord node at the right end (x={x0 + span}, y=0)")
    elif model.node_at(right).support != BoundaryCode.ROLLER:
        errors.append(f"Right end node {right} must be a roller (r), got '{model.node_at(right).s}'")

    for index, node in enumerate(nodes, start=1):
        if abs(node.y - height) < tol and node.is_supported:
            errors.append(f"Top-chord node {index} must not be supported, got '{node.s}'")

    verticals = _verticals(model, height, tol)
    diagonals = _diagonals(model, tol)
    center = x0 + span / 2.0

    if truss_type in (TrussType.PRATT, TrussType.HOWE) and not verticals:
        errors.append(f"{truss_type.value.title()} truss needs vertical members; none found")
    if truss_type in (TrussType.WARREN, TrussType.CURVED_WARREN):
        any_verticals = _vertical_members(model, tol)
        if any_verticals:
            errors.append(
                f"Warren truss must not have vertical members; found {len(any_verticals)} "
                f"({[m.pair for m in any_verticals]})"
            )

    if truss_type == TrussType.PRATT:
        for upper, lower in diagonals:
            mid = (upper.x + lower.x) / 2.0
            if mid < center - tol and upper.x > lower.x:
                errors.append(
                    f"Pratt diagonal ({upper.x},{upper.y})-({lower.x},{lower.y}) in the left "
                    f"half must slope down toward midspan"
                )
            elif mid > center + tol and upper.x < lower.x:
                errors.append(
                    f"Pratt diagonal ({upper.x},{upper.y})-({lower.x},{lower.y}) in the right "
                    f"half must slope down toward midspan"
                )

    if truss_type == TrussType.HOWE:
        outward = [
            (u, l) for u, l in diagonals
            if ((u.x + l.x) / 2.0 < center and u.x > l.x)
            or ((u.x + l.x) / 2.0 > center and u.x < l.x)
        ]
        if not outward:
            errors.append("Howe truss needs diagonals sloping down toward the supports")

    orphans = _orphan_nodes(model)
    if orphans:
        errors.append(f"Nodes not connected to any member: {orphans}")
    duplicates = _duplicate_pairs(model)
    if duplicates:
        errors.append(f"Duplicate members between node pairs: {duplicates}")

    return _result(model, errors, needs_ai_correction=True)


# =============================================================================
# Frame
# =============================================================================

PORTAL_MEMBER_ORDER = ((1, 2), (2, 3), (3, 4))


def validate_portal_frame(model: StructuralModel) -> ValidationResult:
    """Portal frame: 4 nodes, members left column / beam / right column."""
    errors: List[str] = []
    if len(model.nodes) != 4:
        errors.append(f"Portal frame needs exactly 4 nodes, got {len(model.nodes)}")
    if len(model.members) != 3:
        errors.append(f"Portal frame needs exactly 3 members, got {len(model.members)}")
    elif tuple(m.pair for m in model.members) != PORTAL_MEMBER_ORDER:
        errors.append(
            f"Portal frame members must be 1-2, 2-3, 3-4, got "
            f"{[f'{m.i}-{m.j}' for m in model.members]}"
        )
    return _result(model, errors, needs_ai_correction=True)


def validate_frame_structure(
    model: StructuralModel,
    prompt: str,
    dimensions: StructureDimensions,
    current_model: Optional[StructuralModel] = None,
    node_ratio_threshold: float = FRAME_NODE_RATIO_THRESHOLD,
    member_ratio_threshold: float = FRAME_MEMBER_RATIO_THRESHOLD,
) -> ValidationResult:
    """Compare a frame against the counts implied by ``dimensions``.

    Outside addition mode, small count deviations are only logged; below
    the ratio thresholds they are errors. Addition mode requires exact counts.
    """
    if dimensions.is_portal_frame:
        return validate_portal_frame(model)

    errors: List[str] = []
    addition = current_model is not None and detect_addition_mode(prompt)
    expected_nodes = dimensions.expected_nodes
    expected_members = dimensions.expected_members
    actual_nodes, actual_members = len(model.nodes), len(model.members)

    if addition:
        if actual_nodes != expected_nodes:
            errors.append(
                f"Addition needs exactly {expected_nodes} nodes for {dimensions.layers} layers x "
                f"{dimensions.spans} spans, got {actual_nodes}"
            )
        if actual_members != expected_members:
            errors.append(
                f"Addition needs exactly {expected_members} members "
                f"({dimensions.expected_columns} columns + {dimensions.expected_beams} beams), "
                f"got {actual_members}"
            )
    else:
        if actual_nodes < expected_nodes * node_ratio_threshold:
            errors.append(
                f"Too few nodes: {actual_nodes} for {dimensions.layers} layers x "
                f"{dimensions.spans} spans (expected {expected_nodes})"
            )
        elif actual_nodes != expected_nodes:
            logger.warning(f"Frame node count {actual_nodes} differs from expected {expected_nodes}")
        if actual_members < expected_members * member_ratio_threshold:
            errors.append(
                f"Too few members: {actual_members} (expected {expected_members} = "
                f"{dimensions.expected_columns} columns + {dimensions.expected_beams} beams)"
            )
        elif actual_members != expected_members:
            logger.warning(
                f"Frame member count {actual_members} differs from expected {expected_members}"
            )

    for index, member in enumerate(model.members, start=1):
        a, b = model.endpoints(member)
        if a.y == 0 and b.y == 0:
            errors.append(f"Member {index} ({member.i}-{member.j}) lies on the ground line (y=0)")

    unsupported = [i for i, n in enumerate(model.nodes, start=1) if n.y == 0 and not n.is_supported]
    if unsupported:
        errors.append(f"Column base nodes {unsupported} have no support")

    if addition:
        errors.extend(validate_span_count(model).errors)

    return _result(model, errors, needs_ai_correction=True)


# =============================================================================
# Dispatch
# =============================================================================

def validate_structure(
    model: StructuralModel,
    prompt: str,
    structure_type: StructureType,
    dimensions: StructureDimensions,
    current_model: Optional[StructuralModel] = None,
    truss_type: Optional[TrussType] = None,
) -> ValidationResult:
    """Run the validator matching ``structure_type``."""
    if structure_type == StructureType.BEAM:
        return validate_beam_structure(model, prompt)
    if structure_type == StructureType.TRUSS:
        return validate_truss_structure(model, prompt, truss_type)
    if structure_type == StructureType.FRAME:
        return validate_frame_structure(model, prompt, dimensions, current_model)
    logger.debug(f"No structural rules for {structure_type.value}")
    return ValidationResult(is_valid=True, fixed_model=model)
