"""
Structural Modelling Constants for the AI model generator
"""

# Default Steel Member Properties (H-200x100x5.5x8, SI units: kN, m)
DEFAULT_ELASTIC_MODULUS = 205000.0  # E (N/mm²), kept in the units the solver expects
DEFAULT_MOMENT_OF_INERTIA = 0.00011  # I (m⁴)
DEFAULT_AREA = 0.005245              # A (m²)
DEFAULT_SECTION_MODULUS = 0.000638   # Z (m³)
DEFAULT_SECTION_NAME = "H-200×100×8×12"

# Default Frame Geometry (m)
DEFAULT_SPAN_LENGTH = 7.0
DEFAULT_STORY_HEIGHT = 3.2
DEFAULT_PORTAL_HEIGHT = 3.0
DEFAULT_PORTAL_SPAN = 5.0

# Default Truss Geometry (m)
DEFAULT_TRUSS_HEIGHT = 3.0
DEFAULT_TRUSS_SPAN = 15.0
DEFAULT_ARCH_RISE = 4.0
DEFAULT_WARREN_PANELS = 4

# Coordinate Tolerances (m)
COORD_TOLERANCE = 0.01        # Node/load matching, member classification
TRUSS_COORD_TOLERANCE = 0.1   # Truss chord and support lookup

# Frame Count Tolerance Policy
# Ratio of generated/expected below which a count mismatch is a hard error.
# Addition-mode prompts always require an exact match.
FRAME_NODE_RATIO_THRESHOLD = 0.8
FRAME_MEMBER_RATIO_THRESHOLD = 0.7

# Span Count Limits
MIN_SPAN_COUNT = 1
MAX_SPAN_COUNT = 10

# Implicit dimensions for "multi-storey" / "multi-span" wording
IMPLIED_MULTI_COUNT = 4

# Howe truss diagonals that must exist in the canonical 10-node numbering
HOWE_MANDATORY_DIAGONALS = ((7, 2), (8, 3), (9, 4), (10, 5))

# Short prompts get an explicit output request appended
SHORT_PROMPT_LENGTH = 20
SHORT_PROMPT_SUFFIX = "。節点・部材をJSON形式で出力してください。"
