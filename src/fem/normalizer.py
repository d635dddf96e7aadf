"""
Model Normalizer - boundary-code canonicalization and grid dimension detection.

Every boundary-condition comparison in the pipeline goes through
``normalize_boundary_condition`` first, because the LLM may answer with long
forms such as "fixed" or "pinned".
"""

import logging
from collections import Counter
from typing import Any

import numpy as np

from src.core.data_models import BoundaryCode, StructuralModel, StructureDimensions

logger = logging.getLogger(__name__)


def normalize_boundary_condition(code: Any) -> str:
    """Return one of "f", "p", "r", "x" for any input.

    Lookup is case-insensitive; unknown or empty input yields "f".
    """
    return BoundaryCode.parse(code).value


def normalize_model_boundaries(model: StructuralModel) -> StructuralModel:
    """Copy of ``model`` with every node's ``s`` in canonical form."""
    result = model.copy()
    for index, node in enumerate(result.nodes, start=1):
        normalized = normalize_boundary_condition(node.s)
        if normalized != node.s:
            logger.debug(f"Node {index}: boundary '{node.s}' -> '{normalized}'")
            node.s = normalized
    return result


def detect_dimensions_from_model(model: StructuralModel) -> StructureDimensions:
    """Infer layers and spans from a node layout.

    layers = distinct Y count - 1, spans = largest per-Y node count - 1,
    both floored at 1.
    """
    if not model.nodes:
        return StructureDimensions(layers=1, spans=1)

    ys = np.array([node.y for node in model.nodes], dtype=float)
    unique_y = np.unique(ys)
    per_layer = Counter(ys.tolist())

    layers = max(1, len(unique_y) - 1)
    spans = max(1, max(per_layer.values()) - 1)
    logger.debug(f"Model dimensions: {layers} layers, {spans} spans")
    return StructureDimensions(layers=layers, spans=spans)
