"""Wall baseline graph with endpoint snapping and an STRtree over wall footprints."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Sequence, Set, Tuple

from shapely.geometry import LineString, box
from shapely.geometry import Point as ShapelyPoint
from shapely.strtree import STRtree

from wallcore.model.wall_solid import WallSolid


@dataclass
class WallNode:
    """Graph node representing a snapped wall endpoint."""
    id: str
    x: float
    y: float
    connected_walls: Set[str] = field(default_factory=set)

    @property
    def degree(self) -> int:
        return len(self.connected_walls)


@dataclass
class WallEdge:
    """Graph edge representing one wall baseline."""
    id: str
    start_node: str
    end_node: str


class WallGraph:
    """Baseline graph; endpoints within ``snap_tolerance`` share a node."""

    def __init__(self, snap_tolerance: float = 1e-3):
        self.snap_tolerance = snap_tolerance
        self.nodes: Dict[str, WallNode] = {}
        self.edges: Dict[str, WallEdge] = {}
        self.walls: Dict[str, WallSolid] = {}
        self.node_counter = 0
        self._edge_ids: List[str] = []
        self._tree: STRtree | None = None

    def build(self, walls: Sequence[WallSolid]) -> List[str]:
        """
        Snap all wall endpoints into nodes and index the wall footprints.

        Endpoints are matched through an STRtree so snapping never scans every
        node. A later endpoint joins the first earlier node within tolerance.

        Returns:
            Ids of the walls that became edges; open walls whose ends snap
            together are skipped.
        """
        ends: List[Tuple[float, float]] = []
        for wall in walls:
            coords = wall.baseline.coords()
            ends.extend([coords[0], coords[-1]])
        end_tree = STRtree([ShapelyPoint(x, y) for x, y in ends])

        tol = self.snap_tolerance
        roots: Dict[int, str] = {}
        node_of: List[str] = []
        for i, (x, y) in enumerate(ends):
            node_id = None
            for j in sorted(int(k) for k in end_tree.query(box(x - tol, y - tol, x + tol, y + tol))):
                if j >= i:
                    break
                root = roots.get(j)
                if root is not None and math.hypot(ends[j][0] - x, ends[j][1] - y) <= tol:
                    node_id = root
                    break
            if node_id is None:
                node_id = f"n{self.node_counter}"
                self.node_counter += 1
                self.nodes[node_id] = WallNode(id=node_id, x=x, y=y)
                roots[i] = node_id
            node_of.append(node_id)

        added: List[str] = []
        footprints = []
        for k, wall in enumerate(walls):
            start_node, end_node = node_of[2 * k], node_of[2 * k + 1]
            if start_node == end_node and not wall.baseline.closed:
                continue
            self.edges[wall.id] = WallEdge(id=wall.id, start_node=start_node, end_node=end_node)
            self.walls[wall.id] = wall
            self.nodes[start_node].connected_walls.add(wall.id)
            self.nodes[end_node].connected_walls.add(wall.id)
            coords = wall.baseline.coords()
            if wall.baseline.closed:
                coords = coords + coords[:1]
            footprints.append(LineString(coords).buffer(wall.thickness))
            added.append(wall.id)

        self._edge_ids = added
        self._tree = STRtree(footprints) if footprints else None
        return added

    def get_connections(self, edge_id: str) -> List[str]:
        """Get IDs of walls sharing a node with this wall."""
        edge = self.edges.get(edge_id)
        if not edge:
            return []
        connected = self.nodes[edge.start_node].connected_walls | self.nodes[edge.end_node].connected_walls
        return sorted(eid for eid in connected if eid != edge_id)

    def junction_nodes(self, min_degree: int = 3) -> List[WallNode]:
        return [node for node in self.nodes.values() if node.degree >= min_degree]

    def candidate_pairs(self) -> Iterator[Tuple[str, str]]:
        """Wall pairs whose footprints touch, each yielded once in sorted order."""
        if self._tree is None:
            return
        geoms = self._tree.geometries
        for i, geom in enumerate(geoms):
            for j in sorted(int(k) for k in self._tree.query(geom, predicate="intersects")):
                if j > i:
                    a, b = self._edge_ids[i], self._edge_ids[j]
                    yield (a, b) if a < b else (b, a)

    def count_candidate_pairs(self) -> int:
        return sum(1 for _ in self.candidate_pairs())


__all__ = ["WallNode", "WallEdge", "WallGraph"]
