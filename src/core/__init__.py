# Core data model and modelling constants
from .data_models import (
    StructuralModel, Node, Member, NodeLoad, MemberLoad, SpringStiffness,
    BoundaryCode, ConnectionType, StructureType, TrussType,
    StructureDimensions, BoundaryChangeIntent, LoadIntent, ValidationResult,
    ModelParseError,
)
from .constants import COORD_TOLERANCE, TRUSS_COORD_TOLERANCE
