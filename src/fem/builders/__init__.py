"""
Builders package - procedural model generators.

Available builders:
- frame_builder: Regular frame grids, portal frames and fallback frames
- truss_builder: Warren truss, fallback truss

Example usage:
    from src.fem.builders import generate_correct_frame_structure

    model = generate_correct_frame_structure(layers=3, spans=2)
"""

from src.fem.builders.frame_builder import (
    generate_basic_structure,
    generate_correct_frame_structure,
    generate_portal_frame,
    minimal_frame,
)
from src.fem.builders.truss_builder import (
    generate_warren_truss,
    minimal_truss,
)

__all__ = [
    "generate_basic_structure",
    "generate_correct_frame_structure",
    "generate_portal_frame",
    "minimal_frame",
    "generate_warren_truss",
    "minimal_truss",
]
