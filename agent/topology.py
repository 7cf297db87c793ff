"""
Board topology and zone geometry.

The client never sends the board's adjacency, so we infer an approximate
graph from what the legal actions reveal: a unit that may move from cell A to
cell B means A and B are connected, and the same holds for preview rows and
card placements next to our hero. Distances come from BFS over that graph.

Zones are a coarse 3x3 tag (``front|mid|back`` x ``left|center|right``)
measured along the forward axis, the row direction from our hero toward
the enemy hero.
"""

import logging
from collections import defaultdict, deque
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import Action, ActionKind, Snapshot

logger = logging.getLogger(__name__)

ZONE_UNKNOWN = "unknown"
DEPTHS = ("front", "mid", "back")
LANES = ("left", "center", "right")


def parse_zone(text: Optional[str]) -> Optional[Tuple[Optional[str], Optional[str]]]:
    """
    Parse a zone label like ``back_center``, ``front-left`` or just ``left``.

    Returns:
        (depth, lane) with either part possibly None, or None when the text
        names no zone component at all.
    """
    if not text:
        return None
    parts = str(text).lower().replace('-', ' ').replace('_', ' ').split()
    depth = next((p for p in parts if p in DEPTHS), None)
    lane = next((p for p in parts if p in LANES), None)
    if depth is None and lane is None:
        return None
    # Every token must be a zone word, otherwise it's a unit name like "Mid Guard"
    if any(p not in DEPTHS and p not in LANES for p in parts):
        return None
    return depth, lane


class BoardTopology:
    """Undirected graph over cell ids, rebuilt from scratch every snapshot"""

    def __init__(self):
        self._adjacency: Dict[int, Set[int]] = defaultdict(set)

    def add_node(self, cell: Optional[int]):
        if cell is not None and cell >= 0:
            self._adjacency[cell]  # touch to create the node

    def add_edge(self, a: Optional[int], b: Optional[int]):
        if a is None or b is None or a < 0 or b < 0 or a == b:
            return
        self._adjacency[a].add(b)
        self._adjacency[b].add(a)

    def __contains__(self, cell: int) -> bool:
        return cell in self._adjacency

    @property
    def nodes(self) -> List[int]:
        return sorted(self._adjacency)

    def neighbors(self, cell: int) -> Set[int]:
        return set(self._adjacency.get(cell, ()))

    def edge_count(self) -> int:
        return sum(len(n) for n in self._adjacency.values()) // 2

    def hop_distances(self, start: Optional[int]) -> Dict[int, int]:
        """BFS hop counts from ``start`` to every reachable cell."""
        if start is None or start not in self._adjacency:
            return {}
        distances = {start: 0}
        queue = deque([start])
        while queue:
            cell = queue.popleft()
            for neighbor in self._adjacency[cell]:
                if neighbor not in distances:
                    distances[neighbor] = distances[cell] + 1
                    queue.append(neighbor)
        return distances

    @classmethod
    def build(cls, snapshot: Snapshot, actions: Iterable[Action]) -> 'BoardTopology':
        topology = cls()
        for unit in snapshot.self_units + snapshot.enemy_units:
            topology.add_node(unit.cell_index)
        topology.add_node(snapshot.me.hero_cell_index)
        topology.add_node(snapshot.enemy.hero_cell_index)

        for action in actions:
            if action.kind == ActionKind.MOVE_UNIT:
                unit = snapshot.unit(action.unit_id)
                if unit is not None:
                    topology.add_edge(unit.cell_index, action.to_cell_index)
            elif action.kind == ActionKind.PLAY_CARD:
                # Cards are placed next to our hero
                topology.add_edge(snapshot.me.hero_cell_index, action.cell_index)

        for row in snapshot.preview:
            unit = snapshot.unit(row.unit_id)
            if unit is not None:
                topology.add_edge(unit.cell_index, row.to_cell_index)

        logger.debug(f"Topology: {len(topology.nodes)} cells, {topology.edge_count()} edges")
        return topology


class ZoneClassifier:
    """
    Maps cells to zone labels and scores cells against a requested zone.

    Pure function of board size and hero positions, so the same cell always
    gets the same label for a given snapshot.
    """

    def __init__(self, width: Optional[int], height: Optional[int],
                 self_hero_cell: int = -1, enemy_hero_cell: int = -1):
        self.width = width if width and width > 0 else None
        self.height = height if height and height > 0 else None
        self.self_row = self.row(self_hero_cell)
        self.enemy_row = self.row(enemy_hero_cell)

        if self.self_row is not None and self.enemy_row is not None and self.self_row != self.enemy_row:
            self.forward_dir = 1 if self.enemy_row > self.self_row else -1
            self.span = abs(self.enemy_row - self.self_row)
        else:
            self.forward_dir = 0
            self.span = (self.height - 1) if self.height else 0

    @property
    def has_geometry(self) -> bool:
        return self.width is not None and self.height is not None

    def row(self, cell: Optional[int]) -> Optional[int]:
        if self.width is None or cell is None or cell < 0:
            return None
        return cell // self.width

    def col(self, cell: Optional[int]) -> Optional[int]:
        if self.width is None or cell is None or cell < 0:
            return None
        return cell % self.width

    def forward(self, cell: int) -> Optional[int]:
        """Rows advanced from our hero toward the enemy (absolute row without heroes)"""
        y = self.row(cell)
        if y is None:
            return None
        if self.forward_dir == 0:
            return y
        return (y - self.self_row) * self.forward_dir

    def lane(self, cell: int) -> Optional[str]:
        x = self.col(cell)
        if x is None:
            return None
        if x < self.width / 3:
            return "left"
        if x >= 2 * self.width / 3:
            return "right"
        return "center"

    def depth(self, cell: int) -> Optional[str]:
        y = self.row(cell)
        if y is None or self.height is None:
            return None
        if self.forward_dir == 0:
            if y < self.height / 3:
                return "back"
            if y >= 2 * self.height / 3:
                return "front"
            return "mid"
        progress = self.forward(cell) / self.span
        if progress < 1 / 3:
            return "back"
        if progress > 2 / 3:
            return "front"
        return "mid"

    def classify(self, cell: Optional[int]) -> str:
        """Zone label for a cell, ``unknown`` when geometry is missing."""
        if not self.has_geometry or cell is None or cell < 0:
            return ZONE_UNKNOWN
        return f"{self.depth(cell)}_{self.lane(cell)}"

    def zone_score(self, cell: Optional[int], depth: Optional[str], lane: Optional[str]) -> float:
        """
        How well a cell matches a requested zone (higher is better).

        Directional component is double-weighted; lateral is single-weighted.
        Returns 0.0 when the cell can't be placed on the grid.
        """
        fwd = self.forward(cell) if cell is not None else None
        x = self.col(cell)
        if fwd is None or x is None:
            return 0.0

        score = 0.0
        if depth == "front":
            score += 2 * fwd
        elif depth == "back":
            score -= 2 * fwd
        elif depth == "mid":
            score -= 2 * abs(fwd - round(self.span / 2))

        center = (self.width - 1) / 2
        if lane == "left":
            score += center - x
        elif lane == "right":
            score += x - center
        elif lane == "center":
            score -= abs(x - center)
        return score

    def matches(self, cell: Optional[int], depth: Optional[str], lane: Optional[str]) -> bool:
        """True when the cell's label agrees with every requested component."""
        if not self.has_geometry or cell is None or cell < 0:
            return False
        return (depth is None or self.depth(cell) == depth) and (lane is None or self.lane(cell) == lane)

    def cell_distance(self, a: int, b: int) -> int:
        """Grid (Manhattan) distance, or index difference without a width."""
        if self.width is None or a < 0 or b < 0:
            return abs(a - b)
        return abs(self.row(a) - self.row(b)) + abs(self.col(a) - self.col(b))
