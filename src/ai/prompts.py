"""
Prompt Engineering Module for the AI structural model generator.

This module builds every instruction sent to the LLM: the generation system
prompt, the edit-mode prompt carrying the current model, and the correction
prompts that feed validator errors back with an explicit list of what is
missing.

All prompts are designed for:
- A strict JSON node/member output contract (1-based references)
- Single-letter boundary codes (f/p/r/x)
- Deterministic, low-prose responses
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from enum import Enum

from src.core.constants import DEFAULT_ARCH_RISE, SHORT_PROMPT_LENGTH, SHORT_PROMPT_SUFFIX
from src.core.data_models import (
    BoundaryChangeIntent,
    LoadIntent,
    StructuralModel,
    StructureDimensions,
    StructureType,
    TrussType,
)
from src.fem.normalizer import normalize_boundary_condition


class PromptType(Enum):
    """Types of prompts sent to the LLM."""
    GENERATION = "generation"
    EDIT = "edit"
    FRAME_CORRECTION = "frame_correction"
    TRUSS_CORRECTION = "truss_correction"
    BEAM_CORRECTION = "beam_correction"


# ============================================================================
# SYSTEM PROMPTS
# ============================================================================

SYSTEM_PROMPT_BASE = """You are a structural engineer who builds 2D frame analysis models.

Output ONLY one JSON object, no prose, in this exact format:
{
  "nodes": [{"x": 0, "y": 0, "s": "x"}, ...],
  "members": [{"i": 1, "j": 2, "E": 205000, "I": 0.00011, "A": 0.005245, "Z": 0.000638, "name": "H-200×100×8×12"}, ...],
  "nodeLoads": [{"n": 3, "fx": 10, "fy": 0}, ...],
  "memberLoads": [{"m": 4, "q": -10}, ...]
}

Rules:
- Units: metres and kN. Nodes are numbered from 1 in list order; there are no ID fields.
- "s" is the support: "x" fixed, "p" pin, "r" roller, "f" free. Use only these letters.
- Members reference nodes by 1-based index; i and j must differ and must exist.
- Never create two members between the same pair of nodes.
- Every node must be connected to at least one member.
- Leave nodeLoads and memberLoads empty unless loads are requested."""

STRUCTURE_GUIDANCE: Dict[StructureType, str] = {
    StructureType.FRAME: """Rigid frame rules:
- Number nodes row by row from the ground (y=0) upward, left to right in each row.
- Ground nodes (y=0) are fixed ("x") unless told otherwise; all other nodes are free.
- Columns join vertically adjacent nodes; beams join horizontally adjacent nodes above ground.
- There are no beams on the ground line (y=0).""",
    StructureType.TRUSS: """Truss rules:
- Bottom chord on y=0; left end node is a pin ("p"), right end node is a roller ("r").
- Top chord nodes are free; never support a top chord node.
- All members are pin-jointed: set "i_conn": "pin" and "j_conn": "pin".""",
    StructureType.BEAM: """Beam rules:
- All nodes lie on y=0.
- Simple/continuous beams: pin ("p") at the supports, free intermediate nodes.
- Cantilevers: exactly one fixed ("x") end, the other end free.""",
    StructureType.ARCH: """Arch rules:
- Place nodes along the arch curve; supports at both springings (pin or fixed).
- Use enough segments (8-16) for a smooth curve.""",
    StructureType.BASIC: """Choose the simplest structure that satisfies the request.""",
}

# Reference layouts for named truss patterns (prompt content only).
TRUSS_GUIDANCE: Dict[TrussType, str] = {
    TrussType.WARREN: """Warren truss (NO vertical members):
Example, span 12 m, height 3 m, 4 panels:
nodes: 1(0,0,p) 2(3,0,f) 3(6,0,f) 4(9,0,f) 5(12,0,r) 6(1.5,3,f) 7(4.5,3,f) 8(7.5,3,f) 9(10.5,3,f)
members: bottom 1-2 2-3 3-4 4-5; top 6-7 7-8 8-9; diagonals 1-6 6-2 2-7 7-3 3-8 8-4 4-9 9-5""",
    TrussType.PRATT: """Pratt truss (verticals required, diagonals slope down toward midspan):
Example, span 12 m, height 3 m, 4 panels:
nodes: 1(0,0,p) 2(3,0,f) 3(6,0,f) 4(9,0,f) 5(12,0,r) 6(0,3,f) 7(3,3,f) 8(6,3,f) 9(9,3,f) 10(12,3,f)
members: bottom 1-2 2-3 3-4 4-5; top 6-7 7-8 8-9 9-10; verticals 1-6 2-7 3-8 4-9 5-10;
diagonals 6-2 7-3 9-3 10-4""",
    TrussType.HOWE: """Howe truss (verticals required, diagonals slope down toward the supports):
Example, span 12 m, height 3 m, 4 panels:
nodes: 1(0,0,p) 2(3,0,f) 3(6,0,f) 4(9,0,f) 5(12,0,r) 6(0,3,f) 7(3,3,f) 8(6,3,f) 9(9,3,f) 10(12,3,f)
members: bottom 1-2 2-3 3-4 4-5; top 6-7 7-8 8-9 9-10; verticals 1-6 2-7 3-8 4-9 5-10;
diagonals 1-7 2-8 8-4 9-5""",
    TrussType.KINGPOST: """King-post truss: exactly 4 nodes and 5 members.
nodes: 1(0,0,p) 2(L/2,0,f) 3(L,0,r) 4(L/2,H,f)
members: 1-2 2-3 1-4 4-3 2-4 (2-4 is the single king post)""",
    TrussType.QUEENPOST: """Queen-post truss: two central verticals.
nodes: 1(0,0,p) 2(L/3,0,f) 3(2L/3,0,f) 4(L,0,r) 5(L/3,H,f) 6(2L/3,H,f)
members: 1-2 2-3 3-4 5-6 1-5 6-4 2-5 3-6 2-6""",
    TrussType.DOUBLE_WARREN: """Double Warren truss: two overlapping Warren diagonal systems, vertical members allowed.""",
    TrussType.CURVED_PRATT: """Curved-chord Pratt truss: parabolic top chord, verticals at each panel point, Pratt diagonals.""",
    TrussType.CURVED_WARREN: """Curved-chord Warren truss: parabolic top chord and zig-zag diagonals, NO vertical members.""",
    TrussType.K: """K truss: each panel has a vertical split at mid-height by two diagonals forming a K.""",
    TrussType.PENNSYLVANIA: """Pennsylvania truss: Pratt truss with sub-diagonals and sub-verticals in each panel.""",
    TrussType.BALTIMORE: """Baltimore truss: Pratt truss with sub-struts at the bottom chord of each panel.""",
    TrussType.DEFAULT: """Use a Pratt-type truss with verticals at each panel point unless the request says otherwise.""",
}


# ============================================================================
# PROMPT TEMPLATES
# ============================================================================

@dataclass
class PromptTemplate:
    """A prompt template with variable substitution.

    Attributes:
        name: Template identifier
        prompt_type: Type of prompt
        template: Template string with {variables} for substitution
        system_prompt: System prompt to use with this template
        max_tokens: Maximum response tokens (None = provider default)
        temperature: Sampling temperature (None = provider default)
    """
    name: str
    prompt_type: PromptType
    template: str
    system_prompt: str
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None

    def format(self, **kwargs) -> str:
        """Format template with provided variables."""
        return self.template.format(**kwargs)


EDIT_TEMPLATE = PromptTemplate(
    name="edit",
    prompt_type=PromptType.EDIT,
    system_prompt=SYSTEM_PROMPT_BASE,
    template="""Edit the existing model below according to this request:
"{prompt}"

{boundary_section}

**Current nodes ({node_count}):**
{node_lines}

**Current members ({member_count}):**
{member_lines}

{addition_section}{material_section}{load_section}
Final rules:
- Keep every existing node at its coordinates and keep its support letter unless the request changes supports.
- Add new nodes after the existing ones; do not renumber existing nodes.
- Keep section names of unchanged members.
- Output the COMPLETE edited model as one JSON object.""",
)

FRAME_CORRECTION_TEMPLATE = PromptTemplate(
    name="frame_correction",
    prompt_type=PromptType.FRAME_CORRECTION,
    system_prompt=SYSTEM_PROMPT_BASE,
    temperature=0.3,
    max_tokens=4000,
    template="""The previous model for "{prompt}" is wrong:
{error_lines}

Build a regular frame with {layers} layers and {spans} spans:
- nodes: exactly {expected_nodes} ({rows} rows of {per_row}), numbered row by row from y=0
- members: exactly {expected_members} = {columns} columns + {beams} beams
- column between node (floor*{per_row}+col+1) and ((floor+1)*{per_row}+col+1)
- beam between node (floor*{per_row}+span+1) and the next node to its right, floors 1..{layers} only
- ground nodes (y=0) fixed "x", all others free "f"; no members on y=0

Missing columns: {missing_columns}
Missing beams: {missing_beams}
{coordinate_section}
Output the complete corrected model as one JSON object.""",
)

PORTAL_CORRECTION_TEMPLATE = PromptTemplate(
    name="portal_correction",
    prompt_type=PromptType.FRAME_CORRECTION,
    system_prompt=SYSTEM_PROMPT_BASE,
    temperature=0.3,
    max_tokens=4000,
    template="""The previous model for "{prompt}" is not a portal frame:
{error_lines}

A portal frame has exactly 4 nodes and 3 members:
nodes: 1(0,0,x) left base, 2(0,H,f) left top, 3(L,H,f) right top, 4(L,0,x) right base
members: 1-2 left column, 2-3 beam, 3-4 right column (in this order)
Output the corrected model as one JSON object.""",
)

TRUSS_CORRECTION_TEMPLATE = PromptTemplate(
    name="truss_correction",
    prompt_type=PromptType.TRUSS_CORRECTION,
    system_prompt=SYSTEM_PROMPT_BASE,
    temperature=0.3,
    max_tokens=4000,
    template="""The previous {truss_name} truss model for "{prompt}" is wrong:
{error_lines}

Current model: {node_count} nodes, {member_count} members.

Follow this pattern exactly:
{guidance}

Supports: left bottom-chord end "p", right bottom-chord end "r", all other nodes "f".
All members pin-jointed. Output the complete corrected model as one JSON object.""",
)

BEAM_CORRECTION_TEMPLATE = PromptTemplate(
    name="beam_correction",
    prompt_type=PromptType.BEAM_CORRECTION,
    system_prompt=SYSTEM_PROMPT_BASE,
    temperature=0.3,
    max_tokens=4000,
    template="""The previous beam model for "{prompt}" is wrong:
{error_lines}

{beam_rules}
Every node must be connected to a member. Output the complete corrected model as one JSON object.""",
)

BEAM_RULES = {
    "cantilever": """Cantilever: node 1 at x=0 fixed "x", node 2 at the tip free "f", one member 1-2.
Add intermediate free nodes only if requested.""",
    "continuous": """Continuous beam: pin "p" at both ends; intermediate supports only where requested;
intermediate nodes between supports are free "f".""",
    "simple": """Simple beam: node 1 at x=0 pin "p", node 3 at x=L pin "p", node 2 at midspan free "f";
members 1-2 and 2-3.""",
}


def get_template(prompt_type: PromptType) -> PromptTemplate:
    """Get prompt template by type."""
    templates = {
        PromptType.EDIT: EDIT_TEMPLATE,
        PromptType.FRAME_CORRECTION: FRAME_CORRECTION_TEMPLATE,
        PromptType.TRUSS_CORRECTION: TRUSS_CORRECTION_TEMPLATE,
        PromptType.BEAM_CORRECTION: BEAM_CORRECTION_TEMPLATE,
    }
    if prompt_type not in templates:
        raise ValueError(f"Unknown prompt type: {prompt_type}")
    return templates[prompt_type]


# ============================================================================
# GENERATION PROMPTS
# ============================================================================

def _length(value: float) -> str:
    return f"{value:g}"


def _truss_geometry_section(span_length: Optional[float], height: Optional[float]) -> str:
    """Stated truss size, or an empty string when the request gives none."""
    lines = []
    if span_length is not None:
        lines.append(
            f"Span length: {_length(span_length)} m. Bottom chord from x=0 (pin \"p\") "
            f"to x={_length(span_length)} (roller \"r\")."
        )
    if height is not None:
        lines.append(f"Truss height: {_length(height)} m. Top chord at y={_length(height)}.")
    return "\n".join(lines)


def _arch_geometry_section(span_length: Optional[float], rise: Optional[float]) -> str:
    if span_length is None and rise is None:
        return ""
    rise = rise if rise is not None else DEFAULT_ARCH_RISE
    if span_length is None:
        return f"Arch rise: {_length(rise)} m at the crown."
    return (
        f"Arch geometry: span {_length(span_length)} m, rise {_length(rise)} m. "
        f"Supports at (0, 0) and ({_length(span_length)}, 0) pinned \"p\"; crown at "
        f"({_length(span_length / 2.0)}, {_length(rise)}); parabola "
        f"y = 4*{_length(rise)}*x*({_length(span_length)}-x)/{_length(span_length)}^2."
    )


def create_system_prompt(
    structure_type: StructureType,
    truss_type: Optional[TrussType] = None,
    dimensions: Optional[StructureDimensions] = None,
    load_intent: Optional[LoadIntent] = None,
    mode: str = "new",
    span_length: Optional[float] = None,
    height: Optional[float] = None,
    rise: Optional[float] = None,
) -> str:
    """Assemble the generation system prompt from the detected intent.

    ``span_length``, ``height`` and ``rise`` are the values stated in the
    request; None leaves the size to the LLM.
    """
    sections = [SYSTEM_PROMPT_BASE, STRUCTURE_GUIDANCE[structure_type]]

    if structure_type == StructureType.TRUSS:
        sections.append(TRUSS_GUIDANCE[truss_type or TrussType.DEFAULT])
        geometry = _truss_geometry_section(span_length, height)
        if geometry:
            sections.append(geometry)

    if structure_type == StructureType.ARCH:
        geometry = _arch_geometry_section(span_length, rise)
        if geometry:
            sections.append(geometry)

    if structure_type == StructureType.FRAME and dimensions is not None:
        if dimensions.is_portal_frame:
            sections.append(
                "Portal frame: exactly 4 nodes and 3 members. Nodes: left base, left top, "
                "right top, right base. Members: 1-2, 2-3, 3-4."
            )
        else:
            sections.append(
                f"Required size: {dimensions.layers} layers x {dimensions.spans} spans = "
                f"{dimensions.expected_nodes} nodes and {dimensions.expected_members} members "
                f"({dimensions.expected_columns} columns + {dimensions.expected_beams} beams)."
            )

    if load_intent is not None and load_intent.has_load_intent:
        if load_intent.load_type == "node":
            sections.append("Apply the requested concentrated loads in nodeLoads.")
        elif load_intent.load_type == "member":
            sections.append("Apply the requested distributed loads in memberLoads (q in kN/m, negative = downward).")
        else:
            sections.append("Apply the requested loads in nodeLoads and/or memberLoads.")

    if mode == "edit":
        sections.append("You are editing an existing model: keep everything the request does not change.")

    return "\n\n".join(sections)


def create_user_prompt(prompt: str) -> str:
    """Append an explicit JSON request to very short prompts."""
    text = prompt.strip()
    lowered = text.lower()
    keywords = ("json", "節点", "部材", "出力", "構成", "形式")
    if len(text) <= SHORT_PROMPT_LENGTH and not any(k in lowered for k in keywords):
        return text + SHORT_PROMPT_SUFFIX
    return text


# ============================================================================
# EDIT PROMPT
# ============================================================================

def _node_lines(model: StructuralModel) -> str:
    return "\n".join(
        f"{i}: (x={n.x}, y={n.y}) s={normalize_boundary_condition(n.s)}"
        for i, n in enumerate(model.nodes, start=1)
    ) or "(none)"


def _member_lines(model: StructuralModel) -> str:
    return "\n".join(
        f"{k}: {m.i}-{m.j}" + (f" name={m.name}" if m.name else "")
        for k, m in enumerate(model.members, start=1)
    ) or "(none)"


def create_edit_prompt(
    prompt: str,
    current_model: StructuralModel,
    boundary_intent: BoundaryChangeIntent,
    dimensions: Optional[StructureDimensions] = None,
    addition_mode: bool = False,
    material_change: bool = False,
    load_edit_intent: Optional[str] = None,
) -> str:
    """Edit-mode user prompt carrying the current model."""
    if boundary_intent.detected:
        boundary_section = (
            f"Support change requested: set {boundary_intent.target} to "
            f"{boundary_intent.new_condition}. Keep every other support as it is."
        )
    else:
        boundary_section = "No support change requested: keep every node's \"s\" exactly as listed."

    addition_section = ""
    if addition_mode:
        xs = current_model.unique_x()
        ys = current_model.unique_y()
        span_length = min((b - a for a, b in zip(xs, xs[1:])), default=0.0)
        story_height = (ys[1] - ys[0]) if len(ys) > 1 else 0.0
        target = (
            f" Target size: {dimensions.layers} layers x {dimensions.spans} spans."
            if dimensions is not None else ""
        )
        addition_section = (
            f"Addition: existing X coordinates {xs}, Y coordinates {ys}; "
            f"span length {span_length} m, story height {story_height} m. "
            f"Extend the grid with the same spacing.{target}\n"
        )

    material_section = (
        "Material/section change requested: update E, I, A, Z and name of the affected members.\n"
        if material_change else ""
    )

    load_section = {
        "delete_all": "Delete all loads: nodeLoads and memberLoads must be empty.\n",
        "delete": "Delete the loads named in the request.\n",
        "replace": "Replace the existing loads with the new loads in the request.\n",
        "change": "Change or add loads as requested.\n",
    }.get(load_edit_intent, "Keep the existing loads.\n")

    return EDIT_TEMPLATE.format(
        prompt=prompt,
        boundary_section=boundary_section,
        node_count=len(current_model.nodes),
        node_lines=_node_lines(current_model),
        member_count=len(current_model.members),
        member_lines=_member_lines(current_model),
        addition_section=addition_section,
        material_section=material_section,
        load_section=load_section,
    )


# ============================================================================
# CORRECTION PROMPTS
# ============================================================================

def _error_lines(errors: List[str]) -> str:
    return "\n".join(f"- {e}" for e in errors) or "- (unspecified)"


def _format_missing(pairs: List[Tuple[int, int]], limit: int = 10) -> str:
    if not pairs:
        return "none"
    shown = ", ".join(f"{i}-{j}" for i, j in pairs[:limit])
    if len(pairs) > limit:
        shown += f" 他{len(pairs) - limit}個"
    return shown


def find_missing_frame_connections(
    model: StructuralModel,
    dimensions: StructureDimensions,
) -> Tuple[List[Tuple[int, int]], List[Tuple[int, int]]]:
    """Columns and beams of the canonical grid that ``model`` lacks.

    Returns:
        (missing_columns, missing_beams) as 1-based node pairs
    """
    per_row = dimensions.spans + 1
    existing = {m.pair for m in model.members}

    missing_columns = []
    for floor in range(dimensions.layers):
        for col in range(per_row):
            lower = floor * per_row + col + 1
            upper = (floor + 1) * per_row + col + 1
            if (lower, upper) not in existing:
                missing_columns.append((lower, upper))

    missing_beams = []
    for floor in range(1, dimensions.layers + 1):
        for span in range(dimensions.spans):
            left = floor * per_row + span + 1
            if (left, left + 1) not in existing:
                missing_beams.append((left, left + 1))

    return missing_columns, missing_beams


def create_frame_correction_prompt(
    original_prompt: str,
    current_model: StructuralModel,
    errors: List[str],
    dimensions: StructureDimensions,
    reference_model: Optional[StructuralModel] = None,
) -> str:
    """Correction prompt listing the frame members the model is missing."""
    if dimensions.is_portal_frame:
        return PORTAL_CORRECTION_TEMPLATE.format(
            prompt=original_prompt,
            error_lines=_error_lines(errors),
        )

    missing_columns, missing_beams = find_missing_frame_connections(current_model, dimensions)

    coordinate_section = ""
    if reference_model is not None and reference_model.nodes:
        coordinate_section = (
            f"Keep the existing grid: X coordinates {reference_model.unique_x()}, "
            f"Y coordinates {reference_model.unique_y()}; extend with the same spacing.\n"
        )

    per_row = dimensions.spans + 1
    return FRAME_CORRECTION_TEMPLATE.format(
        prompt=original_prompt,
        error_lines=_error_lines(errors),
        layers=dimensions.layers,
        spans=dimensions.spans,
        expected_nodes=dimensions.expected_nodes,
        rows=dimensions.layers + 1,
        per_row=per_row,
        expected_members=dimensions.expected_members,
        columns=dimensions.expected_columns,
        beams=dimensions.expected_beams,
        missing_columns=_format_missing(missing_columns),
        missing_beams=_format_missing(missing_beams),
        coordinate_section=coordinate_section,
    )


def create_truss_correction_prompt(
    original_prompt: str,
    current_model: StructuralModel,
    errors: List[str],
    truss_type: TrussType,
    span_length: Optional[float] = None,
    height: Optional[float] = None,
) -> str:
    """Correction prompt restating the pattern and stated size of the requested truss."""
    guidance = TRUSS_GUIDANCE.get(truss_type, TRUSS_GUIDANCE[TrussType.WARREN])
    geometry = _truss_geometry_section(span_length, height)
    if geometry:
        guidance = f"{geometry}\n{guidance}"
    return TRUSS_CORRECTION_TEMPLATE.format(
        prompt=original_prompt,
        truss_name=truss_type.value,
        error_lines=_error_lines(errors),
        node_count=len(current_model.nodes),
        member_count=len(current_model.members),
        guidance=guidance,
    )


def create_beam_correction_prompt(
    original_prompt: str,
    current_model: StructuralModel,
    errors: List[str],
) -> str:
    """Correction prompt for cantilever, continuous or simple beams."""
    text = original_prompt.lower()
    if any(k in text for k in ("片持ち", "キャンチレバー", "cantilever")):
        rules = BEAM_RULES["cantilever"]
    elif "連続" in text or "continuous" in text:
        rules = BEAM_RULES["continuous"]
    else:
        rules = BEAM_RULES["simple"]
    return BEAM_CORRECTION_TEMPLATE.format(
        prompt=original_prompt,
        error_lines=_error_lines(errors),
        beam_rules=rules,
    )
