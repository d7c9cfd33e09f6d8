from __future__ import annotations

"""
Wall Geometry Contract

Single source of truth for numeric thresholds and defaults used by the
engines. Settings models take their defaults from here; modules should
import these instead of hardcoding.
"""

# Lengths are in millimetres, angles in degrees.

# Tolerance manager
BASE_TOLERANCE = 1e-6
DOCUMENT_PRECISION = 1e-3
REFERENCE_THICKNESS_MM = 100.0
THICKNESS_SCALE_MIN = 0.5
THICKNESS_SCALE_MAX = 2.0
TOLERANCE_MEMO_SIZE = 1000
TOLERANCE_FLOOR_FACTOR = 0.1
TOLERANCE_CEILING_FACTOR = 1000.0
TOLERANCE_THICKNESS_FRACTION = 0.01

CONTEXT_SCALE = {
    "vertex_merge": 2.0,
    "offset_operation": 1.0,
    "boolean_operation": 1.5,
    "shape_healing": 3.0,
}

# (upper bound in degrees, factor); anything at or above the last bound uses ANGLE_SCALE_OBTUSE
ANGLE_SCALE_STEPS = ((15.0, 5.0), (30.0, 3.0), (60.0, 1.5), (120.0, 1.0))
ANGLE_SCALE_OBTUSE = 0.8

# Offset engine
MITER_LIMIT = 10.0
ROUND_SEGMENTS = 8
MIN_SEGMENT_LENGTH = 1e-6
PARALLEL_DET_EPS = 1e-10
STRAIGHT_TURN_DEG = 0.5  # turns below this are treated as pass-through

# Junction resolution
EXTREME_ANGLE_DEG = 15.0
VERY_SHARP_ANGLE_DEG = 5.0
NEAR_STRAIGHT_ANGLE_DEG = 165.0
PARALLEL_COSINE = 0.9
OVERLAP_HIGH_PCT = 80.0
OVERLAP_MEDIUM_PCT = 20.0
CROSS_COMPLEXITY_WARNING_WALLS = 4
SEQUENTIAL_UNION_LIMIT = 10.0
HIERARCHICAL_UNION_LIMIT = 25.0
MAX_COMPLEXITY = 50000
PRIMARY_ACCURACY = 0.95
FALLBACK_ACCURACY = 0.8

# Healing / simplification
SLIVER_FACE_THRESHOLD = 1e-3
DUPLICATE_EDGE_TOLERANCE = 1e-6
MICRO_GAP_THRESHOLD = 1e-4
MAX_HEALING_ITERATIONS = 10
RDP_TOLERANCE = 1e-4
COLLINEAR_ANGLE_DEG = 1.0
CORNER_ANGLE_DEG = 30.0
MIN_RING_VERTICES = 3
ACCURACY_FLOOR = 0.95

# Cache
CACHE_MAX_MEMORY_BYTES = 100 * 1024 * 1024
CACHE_MAX_ENTRIES = 1000
CACHE_TTL_SECONDS = 30 * 60.0
WALL_ENTRY_BASE_BYTES = 2000
WALL_ENTRY_POINT_BYTES = 200
METRICS_ENTRY_BASE_BYTES = 1000
METRICS_ENTRY_ISSUE_BYTES = 200
INTERSECTION_ENTRY_BYTES = 300

# Unified wall data
PROCESSING_HISTORY_LIMIT = 100
BIM_TO_BASIC_ESTIMATE_MS = 100.0
SEGMENT_TO_BIM_ESTIMATE_MS = 50.0
POLYGON_TO_BIM_ESTIMATE_MS = 20.0

# Default thickness per wall type (mm)
DEFAULT_WALL_THICKNESS = {
    "layout": 100.0,
    "zone": 150.0,
    "area": 120.0,
    "structural": 200.0,
    "partition": 80.0,
    "curtain": 50.0,
}

