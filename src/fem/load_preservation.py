"""
Load-data preservation for edit mode.

Structural edits renumber nodes and members, so original loads are carried
over by coordinates rather than by index. Section names are carried over the
same way unless the prompt changes materials or sections.
"""

import logging
from typing import List, Optional

from src.ai.intent_detector import detect_load_edit_intent, detect_material_change_intent
from src.core.constants import COORD_TOLERANCE
from src.core.data_models import MemberLoad, Node, NodeLoad, StructuralModel

logger = logging.getLogger(__name__)


def _same_point(a: Node, b: Node, tolerance: float) -> bool:
    return abs(a.x - b.x) < tolerance and abs(a.y - b.y) < tolerance


def find_node_by_coordinates(
    model: StructuralModel,
    target: Node,
    tolerance: float = COORD_TOLERANCE,
) -> Optional[int]:
    """1-based index of the node at ``target``'s coordinates."""
    for index, node in enumerate(model.nodes, start=1):
        if _same_point(node, target, tolerance):
            return index
    return None


def find_member_by_coordinates(
    model: StructuralModel,
    start: Node,
    end: Node,
    tolerance: float = COORD_TOLERANCE,
) -> Optional[int]:
    """1-based index of the member joining ``start`` and ``end`` in either direction."""
    for index, member in enumerate(model.members, start=1):
        a, b = model.endpoints(member)
        if (_same_point(a, start, tolerance) and _same_point(b, end, tolerance)) or (
            _same_point(a, end, tolerance) and _same_point(b, start, tolerance)
        ):
            return index
    return None


def _remap_node_loads(original: StructuralModel, generated: StructuralModel) -> List[NodeLoad]:
    loads: List[NodeLoad] = []
    for load in original.node_loads:
        if not 1 <= load.n <= len(original.nodes):
            continue
        new_index = find_node_by_coordinates(generated, original.node_at(load.n))
        if new_index is None:
            node = original.node_at(load.n)
            logger.warning(f"Node load on node {load.n} ({node.x}, {node.y}) dropped: no node there")
            continue
        loads.append(NodeLoad(n=new_index, fx=load.fx, fy=load.fy))
    return loads


def _remap_member_loads(original: StructuralModel, generated: StructuralModel) -> List[MemberLoad]:
    loads: List[MemberLoad] = []
    for load in original.member_loads:
        if not 1 <= load.m <= len(original.members):
            continue
        start, end = original.endpoints(original.members[load.m - 1])
        new_index = find_member_by_coordinates(generated, start, end)
        if new_index is None:
            logger.warning(
                f"Member load on member {load.m} ({start.x},{start.y})-({end.x},{end.y}) "
                f"dropped: no member there"
            )
            continue
        loads.append(MemberLoad(m=new_index, q=load.q))
    return loads


def _restore_member_names(original: StructuralModel, result: StructuralModel) -> None:
    for member in original.members:
        if not member.name:
            continue
        start, end = original.endpoints(member)
        index = find_member_by_coordinates(result, start, end)
        if index is not None:
            result.members[index - 1].name = member.name


def preserve_load_data(
    original: StructuralModel,
    generated: StructuralModel,
    prompt: str,
) -> StructuralModel:
    """Carry the original model's loads and section names onto an edited model.

    Load handling follows the prompt:
        - delete with new-load wording: keep the LLM's loads
        - delete everything: no loads at all
        - other delete/change/add wording: keep the LLM's loads
        - no load wording: remap every original load by coordinates
    """
    result = generated.copy()
    intent = detect_load_edit_intent(prompt)

    if intent == "delete_all":
        logger.info("Load deletion requested: clearing all loads")
        result.node_loads = []
        result.member_loads = []
    elif intent is not None:
        logger.info(f"Load edit intent '{intent}': keeping generated loads")
    else:
        result.node_loads = _remap_node_loads(original, result)
        result.member_loads = _remap_member_loads(original, result)
        logger.info(
            f"Loads remapped by coordinates: {len(result.node_loads)}/{len(original.node_loads)} "
            f"node loads, {len(result.member_loads)}/{len(original.member_loads)} member loads"
        )

    if detect_material_change_intent(prompt):
        logger.info("Material change requested: section names not carried over")
    else:
        _restore_member_names(original, result)

    return result
