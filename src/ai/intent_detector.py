"""
Intent Detector for the AI structural model generator.

This module turns a free-text request (Japanese or English) and, in edit
mode, the existing model into structured signals that drive both the prompt
synthesizer and the validators.

Features:
- Structure type and truss pattern classification (ordered first-match rules)
- Frame dimension detection with absolute and incremental ("add N floors") forms
- Load, boundary-change, material-change and load-edit intent detection
- Geometry extraction (height, span length, rise) from prompt text

Usage:
    from src.ai.intent_detector import detect_structure_type, detect_structure_dimensions

    structure_type = detect_structure_type("3層2スパンのラーメン構造")
    dims = detect_structure_dimensions("2階部分を追加", current_model)
"""

import re
import logging
from typing import Callable, Optional, Sequence, Tuple

from src.core.constants import IMPLIED_MULTI_COUNT
from src.core.data_models import (
    BoundaryChangeIntent,
    BoundaryCode,
    LoadIntent,
    StructuralModel,
    StructureDimensions,
    StructureType,
    TrussType,
)
from src.fem.normalizer import detect_dimensions_from_model

logger = logging.getLogger(__name__)

Predicate = Callable[[str], bool]


def _any(*keywords: str) -> Predicate:
    """Predicate: lowercased prompt contains any keyword."""
    return lambda text: any(k in text for k in keywords)


def _regex(pattern: str) -> Predicate:
    compiled = re.compile(pattern, re.IGNORECASE)
    return lambda text: bool(compiled.search(text))


def _first_match(rules: Sequence[Tuple[Predicate, object]], text: str, default):
    for predicate, classification in rules:
        if predicate(text):
            return classification
    return default


# =============================================================================
# Structure Type
# =============================================================================

BEAM_DISQUALIFIERS = ("梁部材", "既存の梁", "梁と同様")

STRUCTURE_CHANGE_PHRASES = (
    "に変更", "を変更", "として", "トラス化", "梁化",
    "梁構造に", "トラス構造に", "アーチ構造に",
)

_BEAM_KEYWORDS = _any(
    "連続梁", "単純梁", "beam", "連続", "単純",
    "キャンチレバー", "片持ち梁", "cantilever",
)

STRUCTURE_TYPE_RULES: Tuple[Tuple[Predicate, StructureType], ...] = (
    (_any("アーチ", "arch", "矢高", "ライズ", "rise"), StructureType.ARCH),
    (_any("ラーメン", "フレーム", "frame", "門型", "多層", "層", "柱", "階"), StructureType.FRAME),
    (_any("トラス", "truss", "ワーレン", "warren", "プラット", "pratt",
          "ハウ", "howe", "斜材", "弦材"), StructureType.TRUSS),
    (lambda text: _BEAM_KEYWORDS(text) and not any(d in text for d in BEAM_DISQUALIFIERS),
     StructureType.BEAM),
)


def _structure_type_from_model(model: StructuralModel) -> Optional[StructureType]:
    """Infer the structure family from an existing model's geometry.

    Levels are counted as distinct Y values (layers + 1), so a single-layer
    truss has 2 levels and a beam lying on one line has 1. Rollers count with
    pins toward the truss hinge-support rule.
    """
    if not model.nodes:
        return None
    distinct_y = len(model.unique_y())
    supports = [n.support for n in model.nodes]
    fixed = supports.count(BoundaryCode.FIXED)
    hinged = supports.count(BoundaryCode.PIN) + supports.count(BoundaryCode.ROLLER)

    if distinct_y >= 2 and fixed > 0:
        return StructureType.FRAME
    if distinct_y == 2 and hinged >= 2:
        return StructureType.TRUSS
    if distinct_y == 1:
        return StructureType.BEAM
    return None


def detect_structure_type(
    prompt: str,
    current_model: Optional[StructuralModel] = None,
) -> StructureType:
    """Classify the requested structure.

    In edit mode the existing model's geometry wins unless the prompt asks
    to change the structure type explicitly.
    """
    text = (prompt or "").lower()

    if current_model is not None:
        inferred = _structure_type_from_model(current_model)
        change_requested = any(p in text for p in STRUCTURE_CHANGE_PHRASES)
        if inferred is not None and not change_requested:
            logger.info(f"Structure type from current model: {inferred.value}")
            return inferred

    detected = _first_match(STRUCTURE_TYPE_RULES, text, StructureType.BASIC)
    logger.info(f"Structure type from prompt keywords: {detected.value}")
    return detected


# =============================================================================
# Truss Type
# =============================================================================

def _curved_truss(text: str) -> TrussType:
    if "ワーレン" in text or "warren" in text:
        return TrussType.CURVED_WARREN
    return TrussType.CURVED_PRATT


def _vertical_member_heuristic(text: str) -> TrussType:
    if any(k in text for k in ("なし", "使用しない", "without")):
        return TrussType.WARREN
    return TrussType.PRATT


_CURVED = _any("曲弦", "curved chord", "曲線", "パラボラ", "parabolic")
_VERTICAL_MENTION = _any("垂直材", "vertical")

# Order matters: specific patterns precede generic ones sharing substrings.
TRUSS_TYPE_RULES: Tuple[Tuple[Predicate, Callable[[str], TrussType]], ...] = (
    (_any("ペンシルヴァニア", "ペンシルバニア", "pennsylvania", "サブダイアゴナル"),
     lambda _: TrussType.PENNSYLVANIA),
    (_any("ボルチモア", "baltimore"), lambda _: TrussType.BALTIMORE),
    (_any("キングポスト", "king post", "kingpost", "中央垂直材"), lambda _: TrussType.KINGPOST),
    (_any("クイーンポスト", "queen post", "queenpost"), lambda _: TrussType.QUEENPOST),
    (lambda text: _any("ダブルワーレン", "double warren")(text)
     or bool(re.search(r"ワーレン.*垂直(?!材?\s*(?:なし|無し|を使用しない))", text)),
     lambda _: TrussType.DOUBLE_WARREN),
    (_CURVED, _curved_truss),
    (_any("ワーレン", "warren", "w字", "wパターン", "ジグザグ", "斜材のみ", "垂直材なし"),
     lambda _: TrussType.WARREN),
    (_any("プラット", "pratt", "∧", "中央向き斜材"), lambda _: TrussType.PRATT),
    (_any("ハウ", "howe", "v字", "外側向き斜材"), lambda _: TrussType.HOWE),
    (_any("k型", "k字", "kトラス", "k-truss", "k truss"), lambda _: TrussType.K),
    (_VERTICAL_MENTION, _vertical_member_heuristic),
)


def detect_truss_type(prompt: str) -> TrussType:
    """Classify the truss pattern named in the prompt (first match wins)."""
    text = (prompt or "").lower()
    for predicate, classify in TRUSS_TYPE_RULES:
        if predicate(text):
            truss_type = classify(text)
            logger.info(f"Truss type: {truss_type.value}")
            return truss_type
    return TrussType.DEFAULT


# =============================================================================
# Dimensions
# =============================================================================

ADDITION_VERBS = r"(?:追加|延長|増設|増築)"

PATTERNS = {
    "has_layers": re.compile(r"\d+\s*(?:層|階|story|floor)", re.IGNORECASE),
    "has_spans": re.compile(r"\d+\s*(?:スパン|span|間)", re.IGNORECASE),
    "portal": re.compile(r"(?:門型|門形|portal\s*frame|portal)", re.IGNORECASE),
    "add_mode": re.compile(ADDITION_VERBS),
    "add_floor": re.compile(rf"(\d+)\s*階\s*(?:部分|を|の)*\s*{ADDITION_VERBS}"),
    "add_layer": re.compile(rf"(\d+)\s*層\s*(?:を|の)*\s*{ADDITION_VERBS}"),
    "layers": [
        re.compile(r"(\d+)\s*層"),
        re.compile(r"(\d+)\s*階"),
        re.compile(r"(\d+)\s*story", re.IGNORECASE),
        re.compile(r"(\d+)\s*floor", re.IGNORECASE),
    ],
    "add_spans": [
        re.compile(rf"(\d+)\s*スパン\s*分*\s*(?:を|の)*\s*{ADDITION_VERBS}"),
        re.compile(rf"{ADDITION_VERBS}\s*(\d+)\s*スパン"),
        re.compile(rf"(?:右側|左側|横).*?(\d+)\s*スパン\s*分*\s*(?:を|の)*\s*{ADDITION_VERBS}"),
    ],
    "side_span": re.compile(r"(?:右側|左側|横).*スパン"),
    "spans": [
        re.compile(r"(\d+)\s*スパン"),
        re.compile(r"(\d+)\s*span", re.IGNORECASE),
        re.compile(r"(\d+)\s*間"),
    ],
    "multi_layer": re.compile(r"多層|高層"),
    "multi_span": re.compile(r"多スパン|大規模"),
}


def _first_int(patterns, text: str) -> Optional[int]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return None


def _layers_to_add(text: str) -> int:
    # "N階部分を追加" names the new floor: exactly one layer is added
    if PATTERNS["add_floor"].search(text):
        return 1
    match = PATTERNS["add_layer"].search(text)
    if match:
        return int(match.group(1))
    return 0


def _spans_to_add(text: str) -> int:
    value = _first_int(PATTERNS["add_spans"], text)
    return value or 0


def detect_addition_mode(prompt: str) -> bool:
    """True when the prompt adds spans or layers to an existing frame."""
    text = prompt or ""
    return bool(
        _layers_to_add(text)
        or _spans_to_add(text)
        or PATTERNS["side_span"].search(text)
    )


def detect_structure_dimensions(
    prompt: str,
    current_model: Optional[StructuralModel] = None,
) -> StructureDimensions:
    """Determine frame layers/spans from the prompt and the current model.

    Absolute forms ("3層2スパン") set counts directly; incremental forms add
    to the current model's counts. The dimension the prompt does not mention
    is inherited from the current model.
    """
    text = prompt or ""
    has_layers = bool(PATTERNS["has_layers"].search(text))
    has_spans = bool(PATTERNS["has_spans"].search(text))
    is_portal = bool(PATTERNS["portal"].search(text))

    current = None
    if current_model is not None and current_model.nodes:
        current = detect_dimensions_from_model(current_model)

    if not (has_layers or has_spans or is_portal) and current is not None:
        logger.info(f"Dimensions from current model: {current.layers} layers, {current.spans} spans")
        return current

    if is_portal:
        return StructureDimensions(layers=1, spans=1, is_portal_frame=True)

    add_mode = bool(PATTERNS["add_mode"].search(text))
    layers_to_add = _layers_to_add(text)
    spans_to_add = _spans_to_add(text)

    layers = 1
    if layers_to_add and current is not None:
        layers = current.layers + layers_to_add
    else:
        layers = _first_int(PATTERNS["layers"], text) or 1

    spans = 1
    if spans_to_add and current is not None:
        spans = current.spans + spans_to_add
    else:
        spans = _first_int(PATTERNS["spans"], text) or 1

    if current is not None:
        if (layers_to_add or add_mode) and not spans_to_add and not has_spans:
            spans = current.spans
        if spans_to_add and not layers_to_add:
            layers = current.layers

    if layers == 1 and spans == 1:
        if PATTERNS["multi_layer"].search(text):
            layers = IMPLIED_MULTI_COUNT
        if PATTERNS["multi_span"].search(text):
            spans = IMPLIED_MULTI_COUNT

    dims = StructureDimensions(layers=max(1, layers), spans=max(1, spans))
    logger.info(f"Dimensions from prompt: {dims.layers} layers, {dims.spans} spans")
    return dims


# =============================================================================
# Load Intent
# =============================================================================

LOAD_KEYWORDS = (
    "荷重", "load", "集中荷重", "等分布荷重", "分布荷重", "水平荷重", "鉛直荷重",
    "外力", "力", "kn", "kgf", "tf", "トン", "キロ", "重量", "重さ",
    "風荷重", "地震荷重", "積載荷重", "固定荷重", "活荷重", "雪荷重",
    "作用", "加える", "かける", "適用", "設定",
)
NODE_LOAD_KEYWORDS = ("集中荷重", "点荷重", "節点荷重", "外力")
MEMBER_LOAD_KEYWORDS = ("等分布荷重", "分布荷重", "部材荷重", "梁荷重")


def detect_load_intent(prompt: str) -> LoadIntent:
    """Keyword-presence load classification (no negation handling)."""
    text = (prompt or "").lower()
    has_load = any(k in text for k in LOAD_KEYWORDS)
    has_node = any(k in text for k in NODE_LOAD_KEYWORDS)
    has_member = any(k in text for k in MEMBER_LOAD_KEYWORDS)

    load_type = None
    if has_load:
        if has_node:
            load_type = "node"
        elif has_member:
            load_type = "member"
        else:
            load_type = "both"

    return LoadIntent(
        has_load_intent=has_load,
        has_node_load_intent=has_node,
        has_member_load_intent=has_member,
        load_type=load_type,
    )


# =============================================================================
# Boundary Change Intent
# =============================================================================

BOUNDARY_KEYWORDS = (
    "境界条件", "支点", "柱脚", "基礎", "固定", "ピン", "ローラー", "自由",
    "support", "boundary", "fixed", "pinned", "roller", "free",
)
CHANGE_KEYWORDS = (
    "変更", "修正", "変更する", "変更してください", "に変更", "から", "に",
    "change", "modify", "update",
)
COORDINATE_KEYWORDS = (
    "スパン", "長さ", "高さ", "座標", "位置", "移動", "変更",
    "span", "length", "height", "coordinate", "position", "change",
)
CONDITION_KEYWORDS = (
    ("固定", BoundaryCode.FIXED),
    ("fixed", BoundaryCode.FIXED),
    ("ピン", BoundaryCode.PIN),
    ("pinned", BoundaryCode.PIN),
    ("pin", BoundaryCode.PIN),
    ("ローラー", BoundaryCode.ROLLER),
    ("roller", BoundaryCode.ROLLER),
    ("自由", BoundaryCode.FREE),
    ("free", BoundaryCode.FREE),
)

COLUMN_BASE_TARGET = "柱脚（Y座標=0の節点）"


def detect_boundary_change_intent(prompt: str) -> BoundaryChangeIntent:
    """Detect an explicit request to change supports.

    Coordinate/span wording without any boundary keyword never counts, even
    though it shares verbs such as "変更" with boundary requests.
    """
    text = (prompt or "").lower()
    has_boundary = any(k in text for k in BOUNDARY_KEYWORDS)
    has_coordinate = any(k in text for k in COORDINATE_KEYWORDS)

    if has_coordinate and not has_boundary:
        logger.debug("Coordinate change wording without boundary keyword: no boundary intent")
        return BoundaryChangeIntent()
    if not has_boundary:
        return BoundaryChangeIntent()

    has_change = any(k in text for k in CHANGE_KEYWORDS)
    if not has_change:
        return BoundaryChangeIntent()

    if "柱脚" in text or "基礎" in text:
        target = COLUMN_BASE_TARGET
    elif "支点" in text:
        target = "支点"
    else:
        target = "指定された節点"

    new_condition = "指定された境界条件"
    for keyword, code in CONDITION_KEYWORDS:
        if keyword in text:
            new_condition = f"{keyword}({code.value})"
            break

    logger.info(f"Boundary change intent: target={target}, condition={new_condition}")
    return BoundaryChangeIntent(detected=True, target=target, new_condition=new_condition)


# =============================================================================
# Material and Load Edit Intents
# =============================================================================

MATERIAL_CHANGE_PATTERN = re.compile(
    r"材料.*(?:変更|設定)|断面.*(?:変更|設定)|弾性係数.*(?:変更|設定)|ヤング係数.*(?:変更|設定)"
    r"|ステンレス|アルミ|material.*(?:change|set)|section.*(?:change|set)"
    r"|modulus.*(?:change|set)|elastic",
    re.IGNORECASE,
)
LOAD_DELETE_PATTERN = re.compile(
    r"荷重.*削除|荷重.*消|荷重.*なし|荷重.*ゼロ|全.*削除.*荷重|荷重.*全.*削除"
    r"|load.*delete|load.*remove|load.*clear",
    re.IGNORECASE,
)
LOAD_CHANGE_PATTERN = re.compile(
    r"荷重.*変更|荷重.*追加|荷重.*設定|load.*change|load.*set|load.*add",
    re.IGNORECASE,
)
NEW_LOAD_PATTERN = re.compile(
    r"新た.*設定|新.*荷重|新規.*荷重|屋根荷重|床荷重|new.*load",
    re.IGNORECASE,
)
DELETE_ALL_PATTERN = re.compile(r"全て削除|すべて削除")


def detect_material_change_intent(prompt: str) -> bool:
    return bool(MATERIAL_CHANGE_PATTERN.search(prompt or ""))


def detect_load_edit_intent(prompt: str) -> Optional[str]:
    """Classify how an edit treats existing loads.

    Returns:
        "replace" (delete plus new loads), "delete_all", "delete", "change",
        or None when the prompt says nothing about loads
    """
    text = prompt or ""
    if LOAD_DELETE_PATTERN.search(text):
        if NEW_LOAD_PATTERN.search(text):
            return "replace"
        if DELETE_ALL_PATTERN.search(text):
            return "delete_all"
        return "delete"
    if LOAD_CHANGE_PATTERN.search(text):
        return "change"
    return None


# =============================================================================
# Geometry Extraction
# =============================================================================

_NUMBER = r"(\d+(?:\.\d+)?)"

GEOMETRY_PATTERNS = {
    "height": [
        re.compile(rf"高さ\s*{_NUMBER}\s*m", re.IGNORECASE),
        re.compile(rf"高さ\s*{_NUMBER}", re.IGNORECASE),
        re.compile(rf"height\s*(?:of|=|:)?\s*{_NUMBER}", re.IGNORECASE),
        re.compile(rf"{_NUMBER}\s*m\s*(?:の)?高さ", re.IGNORECASE),
    ],
    "span": [
        re.compile(rf"スパン\s*{_NUMBER}\s*m", re.IGNORECASE),
        re.compile(rf"span\s*(?:of|=|:)?\s*{_NUMBER}\s*m", re.IGNORECASE),
        re.compile(rf"長さ\s*{_NUMBER}\s*m", re.IGNORECASE),
        re.compile(rf"{_NUMBER}\s*m\s*(?:の)?スパン", re.IGNORECASE),
    ],
    "rise": [
        re.compile(rf"(?:ライズ|矢高)\s*{_NUMBER}", re.IGNORECASE),
        re.compile(rf"rise\s*(?:of|=|:)?\s*{_NUMBER}", re.IGNORECASE),
    ],
}


def _extract_length(key: str, prompt: str) -> Optional[float]:
    for pattern in GEOMETRY_PATTERNS[key]:
        match = pattern.search(prompt or "")
        if match:
            return float(match.group(1))
    return None


def extract_height_from_prompt(prompt: str) -> Optional[float]:
    """Structure height in metres, or None when not stated."""
    return _extract_length("height", prompt)


def extract_span_length_from_prompt(prompt: str) -> Optional[float]:
    """Overall span in metres, or None when not stated."""
    return _extract_length("span", prompt)


def extract_rise_from_prompt(prompt: str) -> Optional[float]:
    """Arch rise in metres, or None when not stated."""
    return _extract_length("rise", prompt)
