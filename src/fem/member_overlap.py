"""
Member-Overlap Resolver - duplicate member removal and truss connection rules.

Members are keyed by geometric type plus their unordered endpoint pair, so two
members are duplicates only when they join the same nodes *and* classify the
same way. Howe trusses carry a set of mandated diagonals that are never
removed and are re-inserted when missing.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from src.core.constants import (
    COORD_TOLERANCE,
    DEFAULT_SECTION_NAME,
    HOWE_MANDATORY_DIAGONALS,
)
from src.core.data_models import (
    ConnectionType,
    Member,
    SpringStiffness,
    StructuralModel,
    StructureType,
    TrussType,
    ValidationResult,
)

logger = logging.getLogger(__name__)

_HOWE_PAIRS: Set[Tuple[int, int]] = {tuple(sorted(p)) for p in HOWE_MANDATORY_DIAGONALS}


class MemberType(Enum):
    """Geometric member orientation"""
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"
    DIAGONAL = "diagonal"
    OTHER = "other"


def classify_member(
    model: StructuralModel,
    member: Member,
    truss_type: Optional[TrussType] = None,
    tolerance: float = COORD_TOLERANCE,
) -> MemberType:
    """Classify a member by its end coordinates.

    Mandated Howe pairs always classify as diagonals.
    """
    if truss_type == TrussType.HOWE and member.pair in _HOWE_PAIRS:
        return MemberType.DIAGONAL

    start, end = model.endpoints(member)
    same_x = abs(start.x - end.x) < tolerance
    same_y = abs(start.y - end.y) < tolerance
    if same_x and not same_y:
        return MemberType.VERTICAL
    if same_y and not same_x:
        return MemberType.HORIZONTAL
    if not same_x and not same_y:
        return MemberType.DIAGONAL
    return MemberType.OTHER


def _is_geometric_diagonal(model: StructuralModel, member: Member, tolerance: float = 0.1) -> bool:
    start, end = model.endpoints(member)
    return abs(start.x - end.x) > tolerance and abs(start.y - end.y) > tolerance


def _template_member(members: List[Member]) -> Member:
    """Existing member to copy section properties from"""
    for member in members:
        if member.i_conn == ConnectionType.PIN and member.j_conn == ConnectionType.PIN:
            return member
    if members:
        return members[0]
    return Member(i=1, j=2, name=DEFAULT_SECTION_NAME)


def _resolve_duplicates(
    model: StructuralModel,
    truss_type: Optional[TrussType],
) -> Tuple[List[int], List[str]]:
    """Return 0-based indices of members to keep plus a log of removals."""
    is_howe = truss_type == TrussType.HOWE
    seen: Dict[str, int] = {}
    removed: Set[int] = set()
    notes: List[str] = []

    for index, member in enumerate(model.members):
        member_type = classify_member(model, member, truss_type)
        key = f"{member_type.value}:{member.pair[0]}-{member.pair[1]}"
        if key not in seen:
            seen[key] = index
            continue

        first = seen[key]
        if not is_howe:
            removed.add(index)
            notes.append(f"Member {index + 1} duplicates member {first + 1} ({key}), removed")
            continue

        if member.pair in _HOWE_PAIRS:
            notes.append(f"Member {index + 1} is a mandated Howe diagonal ({key}), kept")
            continue

        first_diagonal = _is_geometric_diagonal(model, model.members[first])
        this_diagonal = _is_geometric_diagonal(model, member)
        if this_diagonal and not first_diagonal:
            removed.add(first)
            seen[key] = index
            notes.append(f"Member {first + 1} replaced by diagonal member {index + 1} ({key})")
        else:
            removed.add(index)
            notes.append(f"Member {index + 1} duplicates member {first + 1} ({key}), removed")

    keep = [i for i in range(len(model.members)) if i not in removed]
    return keep, notes


def validate_and_fix_member_overlap(
    model: StructuralModel,
    structure_type: Optional[StructureType] = None,
    truss_type: Optional[TrussType] = None,
) -> ValidationResult:
    """Remove duplicate members and enforce truss connection rules.

    Args:
        model: Referentially valid model
        structure_type: Detected structure family; trusses get pin-pin members
        truss_type: Detected truss pattern; Howe enables the mandated diagonals

    Returns:
        ValidationResult whose ``errors`` describe every change made
    """
    result = model.copy()
    errors: List[str] = []

    keep, notes = _resolve_duplicates(result, truss_type)
    errors.extend(notes)

    if len(keep) != len(result.members):
        index_map = {old + 1: new + 1 for new, old in enumerate(keep)}
        result.members = [result.members[i] for i in keep]

        remapped_loads = []
        for load in result.member_loads:
            if load.m in index_map:
                load.m = index_map[load.m]
                remapped_loads.append(load)
            else:
                logger.warning(f"Member load on removed member {load.m} dropped")
        result.member_loads = remapped_loads

    if truss_type == TrussType.HOWE:
        existing = {m.pair for m in result.members}
        template = _template_member(result.members)
        for i, j in HOWE_MANDATORY_DIAGONALS:
            if tuple(sorted((i, j))) in existing:
                continue
            if max(i, j) > len(result.nodes):
                logger.warning(f"Howe diagonal {i}-{j} skipped: model has {len(result.nodes)} nodes")
                continue
            result.members.append(Member(
                i=i, j=j,
                E=template.E, I=template.I, A=template.A, Z=template.Z,
                name=template.name or DEFAULT_SECTION_NAME,
                i_conn=ConnectionType.PIN,
                j_conn=ConnectionType.PIN,
            ))
            errors.append(f"Mandated Howe diagonal {i}-{j} added")

    for member in result.members:
        if member.i_conn == ConnectionType.SPRING and member.spring_i is None:
            member.spring_i = SpringStiffness()
        if member.j_conn == ConnectionType.SPRING and member.spring_j is None:
            member.spring_j = SpringStiffness()

    if structure_type == StructureType.TRUSS:
        for member in result.members:
            member.i_conn = ConnectionType.PIN
            member.j_conn = ConnectionType.PIN
            member.spring_i = None
            member.spring_j = None

    for note in errors:
        logger.info(f"Overlap: {note}")

    return ValidationResult(is_valid=not errors, errors=errors, fixed_model=result)
