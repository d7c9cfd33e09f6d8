"""Closed variants shared by the data model and the engines."""

from __future__ import annotations

from enum import Enum


class JunctionType(str, Enum):
    T_JUNCTION = "t_junction"
    L_JUNCTION = "l_junction"
    CROSS_JUNCTION = "cross_junction"
    PARALLEL_OVERLAP = "parallel_overlap"


class JoinType(str, Enum):
    MITER = "miter"
    BEVEL = "bevel"
    ROUND = "round"


class WallType(str, Enum):
    LAYOUT = "layout"
    ZONE = "zone"
    AREA = "area"
    STRUCTURAL = "structural"
    PARTITION = "partition"
    CURTAIN = "curtain"


class CurveType(str, Enum):
    POLYLINE = "polyline"
    ARC = "arc"
    SPLINE = "spline"


class CreationMethod(str, Enum):
    USER_INPUT = "user_input"
    OFFSET = "offset"
    INTERSECTION = "intersection"
    MITER_APEX = "miter_apex"
    HEALING = "healing"
    CONVERSION = "conversion"


class ResolutionMethod(str, Enum):
    MITER_APEX_CALCULATION = "miter_apex_calculation"
    CORNER_GEOMETRY_CALCULATION = "corner_geometry_calculation"
    CROSS_JUNCTION_RESOLUTION = "cross_junction_resolution"
    PARALLEL_OVERLAP_RESOLUTION = "parallel_overlap_resolution"
    FALLBACK_APPROXIMATION = "fallback_approximation"


class IssueType(str, Enum):
    SLIVER_FACE = "sliver_face"
    MICRO_GAP = "micro_gap"
    SELF_INTERSECTION = "self_intersection"
    DEGENERATE_ELEMENT = "degenerate_element"
    TOLERANCE_VIOLATION = "tolerance_violation"
    TOPOLOGICAL_ERROR = "topological_error"
    GEOMETRIC_INCONSISTENCY = "geometric_inconsistency"


class GeometryMode(str, Enum):
    BASIC = "basic"
    BIM = "bim"


class ToleranceContext(str, Enum):
    VERTEX_MERGE = "vertex_merge"
    OFFSET_OPERATION = "offset_operation"
    BOOLEAN_OPERATION = "boolean_operation"
    SHAPE_HEALING = "shape_healing"


__all__ = [
    "JunctionType",
    "JoinType",
    "WallType",
    "CurveType",
    "CreationMethod",
    "ResolutionMethod",
    "IssueType",
    "GeometryMode",
    "ToleranceContext",
]
