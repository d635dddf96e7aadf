"""
Boundary-condition preservation for edit mode.

The LLM rewrites the whole model on every edit and often changes supports it
was not asked to touch. These passes copy the original model's supports back
onto the generated model, index by index, unless the prompt asked for a
support change. Every pass is idempotent and returns a new model.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from src.core.data_models import BoundaryChangeIntent, StructuralModel
from src.fem.normalizer import normalize_boundary_condition

logger = logging.getLogger(__name__)


@dataclass
class BoundaryPreservationReport:
    """Per-node comparison of original and generated supports.

    Attributes:
        success: True when every shared node matches
        message: One-line summary
        total_nodes: Number of shared node indices compared
        correct_count: Nodes whose support matches the original
        incorrect_count: Nodes whose support differs
        incorrect_nodes: (1-based index, original code, generated code)
        boundary_change_intent: Intent the comparison was made under
    """
    success: bool
    message: str
    total_nodes: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    incorrect_nodes: List[Tuple[int, str, str]] = field(default_factory=list)
    boundary_change_intent: Optional[BoundaryChangeIntent] = None


def _restore_by_index(original: StructuralModel, generated: StructuralModel) -> StructuralModel:
    result = generated.copy()
    shared = min(len(original.nodes), len(result.nodes))
    for k in range(shared):
        wanted = normalize_boundary_condition(original.nodes[k].s)
        if result.nodes[k].s != wanted:
            logger.debug(f"Node {k + 1}: support '{result.nodes[k].s}' restored to '{wanted}'")
        result.nodes[k].s = wanted
    for node in result.nodes[shared:]:
        node.s = normalize_boundary_condition(node.s)
    return result


def _apply_requested_change(generated: StructuralModel, intent: BoundaryChangeIntent) -> StructuralModel:
    result = generated.copy()
    code = intent.new_code
    for index, node in enumerate(result.nodes, start=1):
        node.s = normalize_boundary_condition(node.s)
        if intent.targets_column_base and code is not None and node.y == 0:
            node.s = code.value
            logger.debug(f"Node {index}: column base set to '{code.value}'")
    return result


def force_boundary_condition_preservation(
    original: StructuralModel,
    generated: StructuralModel,
    intent: BoundaryChangeIntent,
) -> StructuralModel:
    """Restore original supports, or apply a requested column-base change."""
    if intent.detected:
        logger.info(f"Boundary change requested ({intent.target} -> {intent.new_condition})")
        return _apply_requested_change(generated, intent)
    return _restore_by_index(original, generated)


def emergency_boundary_condition_fix(
    original: StructuralModel,
    generated: StructuralModel,
    intent: BoundaryChangeIntent,
) -> StructuralModel:
    """Second restoration pass with a logged post-check."""
    result = force_boundary_condition_preservation(original, generated, intent)
    if not intent.detected:
        report = test_boundary_condition_preservation(original, result, intent)
        if not report.success:
            logger.warning(f"Supports still differ after emergency fix: {report.incorrect_nodes}")
    return result


def final_boundary_condition_restore(
    original: StructuralModel,
    generated: StructuralModel,
    intent: BoundaryChangeIntent,
) -> StructuralModel:
    """Third restoration pass."""
    if intent.detected:
        return force_boundary_condition_preservation(original, generated, intent)
    return _restore_by_index(original, generated)


def test_boundary_condition_preservation(
    original: StructuralModel,
    generated: StructuralModel,
    intent: Optional[BoundaryChangeIntent] = None,
) -> BoundaryPreservationReport:
    """Read-only comparison of supports at every shared node index."""
    shared = min(len(original.nodes), len(generated.nodes))
    incorrect: List[Tuple[int, str, str]] = []
    for k in range(shared):
        expected = normalize_boundary_condition(original.nodes[k].s)
        actual = normalize_boundary_condition(generated.nodes[k].s)
        if expected != actual:
            incorrect.append((k + 1, expected, actual))

    success = not incorrect
    message = (
        f"All {shared} shared nodes keep their supports"
        if success else f"{len(incorrect)} of {shared} nodes changed support"
    )
    return BoundaryPreservationReport(
        success=success,
        message=message,
        total_nodes=shared,
        correct_count=shared - len(incorrect),
        incorrect_count=len(incorrect),
        incorrect_nodes=incorrect,
        boundary_change_intent=intent,
    )


# Keep pytest from collecting this when imported into a test module
test_boundary_condition_preservation.__test__ = False


def ultimate_boundary_condition_fix(
    original: StructuralModel,
    generated: StructuralModel,
) -> StructuralModel:
    """Unconditional index-by-index restore; ignores any change intent."""
    return _restore_by_index(original, generated)


def validate_boundary_conditions(
    original: StructuralModel,
    generated: StructuralModel,
    intent: BoundaryChangeIntent,
) -> List[str]:
    """Warnings for supports that differ from what the edit should produce."""
    warnings: List[str] = []
    code = intent.new_code
    shared = min(len(original.nodes), len(generated.nodes))
    for k in range(shared):
        node = generated.nodes[k]
        actual = normalize_boundary_condition(node.s)
        if intent.targets_column_base and code is not None and node.y == 0:
            expected = code.value
        elif intent.detected:
            continue
        else:
            expected = normalize_boundary_condition(original.nodes[k].s)
        if actual != expected:
            warnings.append(f"Node {k + 1}: support '{actual}', expected '{expected}'")
    return warnings


def preserve_boundary_conditions(
    original: StructuralModel,
    generated: StructuralModel,
    intent: BoundaryChangeIntent,
) -> StructuralModel:
    """Run every restoration pass in order.

    Verification and the unconditional fix only run without a change intent,
    since they would revert the change the user asked for.
    """
    result = force_boundary_condition_preservation(original, generated, intent)
    result = emergency_boundary_condition_fix(original, result, intent)
    result = final_boundary_condition_restore(original, result, intent)

    if not intent.detected:
        report = test_boundary_condition_preservation(original, result, intent)
        logger.info(f"Boundary check: {report.message}")
        if not report.success:
            result = ultimate_boundary_condition_fix(original, result)

    for warning in validate_boundary_conditions(original, result, intent):
        logger.warning(warning)
    return result
