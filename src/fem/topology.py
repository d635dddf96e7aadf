"""
Topology Validator - referential integrity of LLM-produced models.

``validate_node_references`` works on the raw decoded JSON so that every
problem (missing keys, non-numeric values, bad indices) is reported in a
single pass. Its ``fixed_model`` is a repaired StructuralModel that later
stages can index into safely:

- unknown boundary codes become free nodes
- members with missing, non-integer, out-of-range or self references are dropped
- loads pointing at missing nodes/members are dropped, and member loads are
  renumbered to follow the surviving members
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional

from src.core.constants import MIN_SPAN_COUNT, MAX_SPAN_COUNT
from src.core.data_models import (
    BOUNDARY_ALIASES,
    BoundaryCode,
    Member,
    MemberLoad,
    ModelParseError,
    Node,
    NodeLoad,
    StructuralModel,
    ValidationResult,
)

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(value)
        return True
    except (TypeError, ValueError):
        return False


def _as_int(value: Any) -> Optional[int]:
    if not _is_number(value):
        return None
    number = float(value)
    return int(number) if number.is_integer() else None


def validate_node_references(data: Mapping[str, Any]) -> ValidationResult:
    """Check nodes, members and loads of a decoded model.

    Errors accumulate; the span-count cross-check is appended at the end.

    Raises:
        ModelParseError: If the node list itself is unusable (missing or
            non-numeric coordinates), since nothing downstream can index it
    """
    errors: List[str] = []
    raw_nodes = data.get("nodes") or []
    raw_members = data.get("members") or []
    raw_node_loads = data.get("nodeLoads") or []
    raw_member_loads = data.get("memberLoads") or []

    if not isinstance(raw_nodes, list) or not isinstance(raw_members, list):
        raise ModelParseError("nodes and members must be arrays")

    nodes: List[Node] = []
    coordinate_errors = False
    for index, raw in enumerate(raw_nodes, start=1):
        if not isinstance(raw, Mapping):
            errors.append(f"Node {index}: not an object")
            coordinate_errors = True
            continue
        for key in ("x", "y", "s"):
            if key not in raw:
                errors.append(f"Node {index}: missing property '{key}'")
        if not (_is_number(raw.get("x")) and _is_number(raw.get("y"))):
            errors.append(f"Node {index}: coordinates must be numeric")
            coordinate_errors = True
            continue
        s = raw.get("s")
        if s is not None and str(s).strip().lower() not in BOUNDARY_ALIASES:
            errors.append(f"Node {index}: invalid boundary condition '{s}'")
            s = BoundaryCode.FREE.value
        nodes.append(Node(x=float(raw["x"]), y=float(raw["y"]), s=str(s or BoundaryCode.FREE.value)))

    if coordinate_errors:
        raise ModelParseError("; ".join(errors))

    node_count = len(nodes)
    members: List[Member] = []
    member_index_map: Dict[int, int] = {}
    for index, raw in enumerate(raw_members, start=1):
        if not isinstance(raw, Mapping):
            errors.append(f"Member {index}: not an object")
            continue
        if "i" not in raw or "j" not in raw:
            errors.append(f"Member {index}: missing property 'i' or 'j'")
            continue
        i, j = _as_int(raw.get("i")), _as_int(raw.get("j"))
        if i is None or j is None:
            errors.append(f"Member {index}: i and j must be integers")
            continue
        problem = False
        if not 1 <= i <= node_count:
            errors.append(f"Member {index}: start node {i} does not exist (1-{node_count})")
            problem = True
        if not 1 <= j <= node_count:
            errors.append(f"Member {index}: end node {j} does not exist (1-{node_count})")
            problem = True
        if i == j:
            errors.append(f"Member {index}: start and end node are both {i}")
            problem = True
        if problem:
            continue
        members.append(Member.from_dict(raw))
        member_index_map[index] = len(members)

    node_loads: List[NodeLoad] = []
    for index, raw in enumerate(raw_node_loads, start=1):
        ref = _as_int(raw.get("n", raw.get("node"))) if isinstance(raw, Mapping) else None
        if ref is None or not 1 <= ref <= node_count:
            errors.append(f"Node load {index}: node {ref} does not exist")
            continue
        node_loads.append(NodeLoad.from_dict(raw))

    member_loads: List[MemberLoad] = []
    for index, raw in enumerate(raw_member_loads, start=1):
        ref = _as_int(raw.get("m", raw.get("member"))) if isinstance(raw, Mapping) else None
        if ref is None or not 1 <= ref <= len(raw_members):
            errors.append(f"Member load {index}: member {ref} does not exist")
            continue
        if ref not in member_index_map:
            logger.warning(f"Member load {index} dropped with its invalid member {ref}")
            continue
        load = MemberLoad.from_dict(raw)
        load.m = member_index_map[ref]
        member_loads.append(load)

    fixed_model = StructuralModel(
        nodes=nodes,
        members=members,
        node_loads=node_loads,
        member_loads=member_loads,
    )

    span_result = validate_span_count(fixed_model)
    errors.extend(span_result.errors)

    if errors:
        logger.warning(f"Topology validation found {len(errors)} problem(s)")
        for error in errors:
            logger.debug(f"  - {error}")

    return ValidationResult(is_valid=not errors, errors=errors, fixed_model=fixed_model)


def validate_span_count(model: StructuralModel) -> ValidationResult:
    """Cross-check a frame's per-layer node count and member count.

    Skipped for truss, arch and beam layouts, whose ground nodes do not
    describe column lines.
    """
    nodes, members = model.nodes, model.members
    if len(nodes) < 4 or len(members) < 3:
        return ValidationResult(is_valid=True, fixed_model=model)

    ground = [n for n in nodes if n.y == 0]
    ground_supports = {n.support for n in ground}
    distinct_y = model.unique_y()

    if BoundaryCode.PIN in ground_supports and BoundaryCode.ROLLER in ground_supports:
        logger.debug("Span count check skipped: truss layout")
        return ValidationResult(is_valid=True, fixed_model=model)
    if (len(ground) == 2 and len(distinct_y) >= 3
            and ground_supports & {BoundaryCode.PIN, BoundaryCode.ROLLER}):
        logger.debug("Span count check skipped: arch layout")
        return ValidationResult(is_valid=True, fixed_model=model)
    if len(distinct_y) == 1:
        logger.debug("Span count check skipped: beam layout")
        return ValidationResult(is_valid=True, fixed_model=model)

    errors: List[str] = []
    ground_count = len(ground)
    span_count = ground_count - 1

    per_layer = Counter(n.y for n in nodes)
    for y in distinct_y:
        if per_layer[y] != ground_count:
            errors.append(
                f"Layer at y={y}: {per_layer[y]} nodes, expected {ground_count} "
                f"(same as the ground layer)"
            )
            break

    actual_layers = len(distinct_y) - 1
    columns = (span_count + 1) * actual_layers
    beams = span_count * actual_layers
    expected_members = columns + beams
    if len(members) != expected_members:
        errors.append(
            f"Member count {len(members)} does not match {span_count} spans x "
            f"{actual_layers} layers: expected {expected_members} "
            f"({columns} columns + {beams} beams)"
        )

    if not MIN_SPAN_COUNT <= span_count <= MAX_SPAN_COUNT:
        errors.append(f"Span count {span_count} is outside {MIN_SPAN_COUNT}-{MAX_SPAN_COUNT}")

    return ValidationResult(is_valid=not errors, errors=errors, fixed_model=model)
