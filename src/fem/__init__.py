"""
FEM model module for the structural model generator

Validation and repair of 2D node/member models: boundary-code
normalization, topology checks, duplicate-member removal, structure-type
rules, edit-mode boundary/load preservation and procedural builders.

Submodules are imported directly (e.g. ``from src.fem.topology import
validate_node_references``); this package does not re-export them because
several submodules depend on src.ai.intent_detector.
"""
