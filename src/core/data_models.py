"""
Data Models for the AI structural model generator.

The JSON contract exchanged with the LLM and the browser client is
``{"nodes": [...], "members": [...], "nodeLoads": [...], "memberLoads": [...]}``.
Node and member identity is the 1-based position in their sequence; there are
no explicit IDs, so any renumbering must remap every reference.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any, Mapping, Tuple

from .constants import (
    DEFAULT_ELASTIC_MODULUS,
    DEFAULT_MOMENT_OF_INERTIA,
    DEFAULT_AREA,
    DEFAULT_SECTION_MODULUS,
)


class ModelParseError(ValueError):
    """Raised when decoded JSON cannot be turned into a StructuralModel."""
    pass


class BoundaryCode(Enum):
    """Support type of a node"""
    FREE = "f"
    PIN = "p"
    ROLLER = "r"
    FIXED = "x"

    @classmethod
    def parse(cls, code: Any) -> "BoundaryCode":
        """Map any accepted spelling to a code. Unknown or empty input is FREE."""
        if isinstance(code, BoundaryCode):
            return code
        if code is None:
            return cls.FREE
        return BOUNDARY_ALIASES.get(str(code).strip().lower(), cls.FREE)


BOUNDARY_ALIASES: Dict[str, BoundaryCode] = {
    "fixed": BoundaryCode.FIXED,
    "fix": BoundaryCode.FIXED,
    "x": BoundaryCode.FIXED,
    "pin": BoundaryCode.PIN,
    "pinned": BoundaryCode.PIN,
    "hinge": BoundaryCode.PIN,
    "p": BoundaryCode.PIN,
    "roller": BoundaryCode.ROLLER,
    "r": BoundaryCode.ROLLER,
    "free": BoundaryCode.FREE,
    "f": BoundaryCode.FREE,
}


class ConnectionType(Enum):
    """Member end connection"""
    RIGID = "rigid"
    PIN = "pin"
    SPRING = "spring"

    @classmethod
    def parse(cls, value: Any) -> "ConnectionType":
        if isinstance(value, ConnectionType):
            return value
        text = str(value or "").strip().lower()
        if text in ("spring", "バネ"):
            return cls.SPRING
        if text in ("pin", "pinned", "hinge", "p"):
            return cls.PIN
        return cls.RIGID


class StructureType(Enum):
    """Structure family inferred from the prompt or an existing model"""
    FRAME = "frame"
    TRUSS = "truss"
    BEAM = "beam"
    ARCH = "arch"
    BASIC = "basic"


class TrussType(Enum):
    """Named truss patterns"""
    PENNSYLVANIA = "pennsylvania"
    BALTIMORE = "baltimore"
    KINGPOST = "kingpost"
    QUEENPOST = "queenpost"
    DOUBLE_WARREN = "doublewarren"
    CURVED_PRATT = "curvedpratt"
    CURVED_WARREN = "curvedwarren"
    WARREN = "warren"
    PRATT = "pratt"
    HOWE = "howe"
    K = "k"
    DEFAULT = "default"


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ModelParseError(f"{name} must be numeric, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ModelParseError(f"{name} must be numeric, got {value!r}")


def _as_float_or(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_index(value: Any, name: str) -> int:
    number = _as_float(value, name)
    if not number.is_integer():
        raise ModelParseError(f"{name} must be an integer, got {value!r}")
    return int(number)


@dataclass
class SpringStiffness:
    """Spring stiffness at a member end (kN/m, kN/m, kNm/rad)"""
    kx: float = 0.0
    ky: float = 0.0
    kr: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SpringStiffness":
        return cls(
            kx=_as_float_or(data.get("Kx"), 0.0),
            ky=_as_float_or(data.get("Ky"), 0.0),
            kr=_as_float_or(data.get("Kr"), 0.0),
        )

    def to_dict(self) -> Dict[str, float]:
        return {"Kx": self.kx, "Ky": self.ky, "Kr": self.kr}


@dataclass
class Node:
    """A model node.

    Attributes:
        x: Horizontal coordinate (m)
        y: Vertical coordinate (m)
        s: Boundary code exactly as received; see ``support`` for the
            normalized value
    """
    x: float
    y: float
    s: str = BoundaryCode.FREE.value

    @property
    def support(self) -> BoundaryCode:
        """Normalized boundary code"""
        return BoundaryCode.parse(self.s)

    @property
    def is_supported(self) -> bool:
        return self.support != BoundaryCode.FREE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Node":
        return cls(
            x=_as_float(data.get("x"), "node x"),
            y=_as_float(data.get("y"), "node y"),
            s=str(data.get("s", BoundaryCode.FREE.value)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"x": self.x, "y": self.y, "s": self.s}


@dataclass
class Member:
    """A two-node member with 1-based node references.

    ``from_dict`` is the single place where optional JSON fields receive
    their defaults (material constants, rigid ends, no springs).
    """
    i: int
    j: int
    E: float = DEFAULT_ELASTIC_MODULUS
    I: float = DEFAULT_MOMENT_OF_INERTIA
    A: float = DEFAULT_AREA
    Z: float = DEFAULT_SECTION_MODULUS
    name: Optional[str] = None
    i_conn: ConnectionType = ConnectionType.RIGID
    j_conn: ConnectionType = ConnectionType.RIGID
    spring_i: Optional[SpringStiffness] = None
    spring_j: Optional[SpringStiffness] = None

    @property
    def pair(self) -> Tuple[int, int]:
        """Unordered endpoint pair as a sorted tuple"""
        return (min(self.i, self.j), max(self.i, self.j))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Member":
        spring_i = data.get("spring_i")
        spring_j = data.get("spring_j")
        name = data.get("name")
        return cls(
            i=_as_index(data.get("i"), "member i"),
            j=_as_index(data.get("j"), "member j"),
            E=_as_float_or(data.get("E"), DEFAULT_ELASTIC_MODULUS),
            I=_as_float_or(data.get("I"), DEFAULT_MOMENT_OF_INERTIA),
            A=_as_float_or(data.get("A"), DEFAULT_AREA),
            Z=_as_float_or(data.get("Z"), DEFAULT_SECTION_MODULUS),
            name=str(name) if name else None,
            i_conn=ConnectionType.parse(data.get("i_conn")),
            j_conn=ConnectionType.parse(data.get("j_conn")),
            spring_i=SpringStiffness.from_dict(spring_i) if isinstance(spring_i, Mapping) else None,
            spring_j=SpringStiffness.from_dict(spring_j) if isinstance(spring_j, Mapping) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "i": self.i,
            "j": self.j,
            "E": self.E,
            "I": self.I,
            "A": self.A,
            "Z": self.Z,
        }
        if self.name:
            result["name"] = self.name
        result["i_conn"] = self.i_conn.value
        result["j_conn"] = self.j_conn.value
        if self.spring_i is not None:
            result["spring_i"] = self.spring_i.to_dict()
        if self.spring_j is not None:
            result["spring_j"] = self.spring_j.to_dict()
        return result


@dataclass
class NodeLoad:
    """Concentrated load on a node (kN)"""
    n: int
    fx: float = 0.0
    fy: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NodeLoad":
        ref = data.get("n", data.get("node"))
        return cls(
            n=_as_index(ref, "node load n"),
            fx=_as_float_or(data.get("fx", data.get("px")), 0.0),
            fy=_as_float_or(data.get("fy", data.get("py")), 0.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"n": self.n, "fx": self.fx, "fy": self.fy}


@dataclass
class MemberLoad:
    """Uniformly distributed load on a member (kN/m)"""
    m: int
    q: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MemberLoad":
        ref = data.get("m", data.get("member"))
        return cls(
            m=_as_index(ref, "member load m"),
            q=_as_float_or(data.get("q", data.get("w")), 0.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"m": self.m, "q": self.q}


@dataclass
class StructuralModel:
    """A complete 2D model: nodes, members and loads."""
    nodes: List[Node] = field(default_factory=list)
    members: List[Member] = field(default_factory=list)
    node_loads: List[NodeLoad] = field(default_factory=list)
    member_loads: List[MemberLoad] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StructuralModel":
        """Build a model from its JSON form.

        Raises:
            ModelParseError: If any entry has missing or non-numeric values
        """
        if not isinstance(data, Mapping):
            raise ModelParseError(f"Model must be a JSON object, got {type(data).__name__}")
        return cls(
            nodes=[Node.from_dict(n) for n in data.get("nodes") or []],
            members=[Member.from_dict(m) for m in data.get("members") or []],
            node_loads=[NodeLoad.from_dict(l) for l in data.get("nodeLoads") or []],
            member_loads=[MemberLoad.from_dict(l) for l in data.get("memberLoads") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "members": [m.to_dict() for m in self.members],
            "nodeLoads": [l.to_dict() for l in self.node_loads],
            "memberLoads": [l.to_dict() for l in self.member_loads],
        }

    def copy(self) -> "StructuralModel":
        """Deep copy; passes never modify their inputs."""
        return copy.deepcopy(self)

    def node_at(self, index: int) -> Node:
        """Node by 1-based index"""
        return self.nodes[index - 1]

    def endpoints(self, member: Member) -> Tuple[Node, Node]:
        return self.node_at(member.i), self.node_at(member.j)

    def unique_y(self) -> List[float]:
        return sorted({n.y for n in self.nodes})

    def unique_x(self) -> List[float]:
        return sorted({n.x for n in self.nodes})


@dataclass
class StructureDimensions:
    """Regular frame grid size. Computed once per request."""
    layers: int = 1
    spans: int = 1
    is_portal_frame: bool = False

    @property
    def expected_nodes(self) -> int:
        return (self.layers + 1) * (self.spans + 1)

    @property
    def expected_columns(self) -> int:
        return self.layers * (self.spans + 1)

    @property
    def expected_beams(self) -> int:
        return self.layers * self.spans

    @property
    def expected_members(self) -> int:
        return self.expected_columns + self.expected_beams


@dataclass
class BoundaryChangeIntent:
    """Whether the prompt asks to change supports, and to what"""
    detected: bool = False
    target: str = ""
    new_condition: str = ""

    @property
    def new_code(self) -> Optional[BoundaryCode]:
        """Requested code parsed from ``new_condition``, e.g. "ピン(p)" -> PIN"""
        text = self.new_condition
        if "(" in text and text.endswith(")"):
            code = text[text.rindex("(") + 1:-1]
            if code in {c.value for c in BoundaryCode}:
                return BoundaryCode(code)
        for keyword, code in (("ピン", BoundaryCode.PIN), ("ローラー", BoundaryCode.ROLLER),
                              ("固定", BoundaryCode.FIXED), ("自由", BoundaryCode.FREE)):
            if keyword in text:
                return code
        return None

    @property
    def targets_column_base(self) -> bool:
        return self.detected and "柱脚" in self.target


@dataclass
class LoadIntent:
    """Load keywords found in the prompt"""
    has_load_intent: bool = False
    has_node_load_intent: bool = False
    has_member_load_intent: bool = False
    load_type: Optional[str] = None  # "node", "member", "both" or None


@dataclass
class ValidationResult:
    """Uniform result of every validator.

    Downstream stages consume ``fixed_model`` only; ``errors`` are reported
    to logs and correction prompts.
    """
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    fixed_model: Optional[StructuralModel] = None
    needs_ai_correction: bool = False
