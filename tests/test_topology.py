"""
Tests for topology.py

Board graph construction, BFS distances, zone labels and zone scoring.
"""

import pytest

from agent.models import Snapshot, parse_actions
from agent.topology import BoardTopology, ZoneClassifier, ZONE_UNKNOWN, parse_zone
from tests.board_fixtures import make_snapshot, make_unit, move, play


class TestParseZone:
    """Tests for zone label parsing"""

    def test_full_label(self):
        """Underscore label splits into depth and lane"""
        assert parse_zone('back_center') == ('back', 'center')

    def test_dash_and_case(self):
        """Separators and case don't matter"""
        assert parse_zone('Front-Left') == ('front', 'left')

    def test_lane_only(self):
        """A single component leaves the other as None"""
        assert parse_zone('left') == (None, 'left')

    def test_unit_name_is_not_a_zone(self):
        """A name that merely contains a zone word is not a zone"""
        assert parse_zone('Mid Guard') is None

    def test_empty(self):
        """None and empty text parse to None"""
        assert parse_zone(None) is None
        assert parse_zone('') is None


class TestZoneClassifier:
    """Tests for zone classification on a 5x5 board"""

    @pytest.fixture
    def zones(self):
        return ZoneClassifier(5, 5, self_hero_cell=2, enemy_hero_cell=22)

    def test_forward_axis(self, zones):
        """Forward runs from our hero row toward the enemy hero row"""
        assert zones.forward_dir == 1
        assert zones.span == 4

    def test_hero_cells(self, zones):
        """Our hero sits in the back, the enemy hero in the front"""
        assert zones.classify(2) == 'back_center'
        assert zones.classify(22) == 'front_center'

    def test_lanes(self, zones):
        """Columns split into left / center / right"""
        assert zones.classify(10) == 'mid_left'
        assert zones.classify(12) == 'mid_center'
        assert zones.classify(14) == 'mid_right'

    def test_reversed_direction(self):
        """With our hero on the last row the labels flip"""
        zones = ZoneClassifier(5, 5, self_hero_cell=22, enemy_hero_cell=2)
        assert zones.forward_dir == -1
        assert zones.classify(22) == 'back_center'
        assert zones.classify(2) == 'front_center'

    def test_missing_geometry_is_unknown(self):
        """No width means every cell is unknown, without raising"""
        zones = ZoneClassifier(None, None)
        assert zones.classify(3) == ZONE_UNKNOWN
        assert zones.zone_score(3, 'front', 'center') == 0.0

    def test_negative_cell_is_unknown(self, zones):
        """Off-board cells are unknown"""
        assert zones.classify(-1) == ZONE_UNKNOWN

    def test_classification_is_stable(self, zones):
        """Same cell, same topology, same label"""
        assert zones.classify(17) == zones.classify(17)

    def test_front_score_prefers_advanced_cells(self, zones):
        """Front scoring rewards rows closer to the enemy"""
        assert zones.zone_score(17, 'front', 'center') > zones.zone_score(7, 'front', 'center')

    def test_back_score_prefers_home_rows(self, zones):
        """Back scoring rewards rows closer to our hero"""
        assert zones.zone_score(7, 'back', 'center') > zones.zone_score(17, 'back', 'center')

    def test_lane_score(self, zones):
        """Left scoring rewards low columns"""
        assert zones.zone_score(10, 'mid', 'left') > zones.zone_score(14, 'mid', 'left')

    def test_matches(self, zones):
        """matches() checks every requested component"""
        assert zones.matches(7, 'back', 'center')
        assert zones.matches(7, None, 'center')
        assert not zones.matches(17, 'back', 'center')

    def test_cell_distance(self, zones):
        """Manhattan distance on the grid"""
        assert zones.cell_distance(0, 24) == 8
        assert zones.cell_distance(7, 12) == 1


class TestBoardTopology:
    """Tests for the inferred board graph"""

    def test_bfs_hop_distances(self):
        """BFS counts hops along added edges"""
        topology = BoardTopology()
        topology.add_edge(1, 2)
        topology.add_edge(2, 3)
        topology.add_edge(3, 4)
        assert topology.hop_distances(1) == {1: 0, 2: 1, 3: 2, 4: 3}

    def test_unknown_start(self):
        """Starting from a cell not in the graph gives no distances"""
        assert BoardTopology().hop_distances(99) == {}

    def test_ignores_bad_edges(self):
        """Negative cells and self-loops never become edges"""
        topology = BoardTopology()
        topology.add_edge(-1, 3)
        topology.add_edge(3, 3)
        topology.add_edge(None, 3)
        assert topology.edge_count() == 0

    def test_build_from_actions(self):
        """Moves connect unit cell to destination, plays connect our hero to the cell"""
        snapshot = Snapshot.from_dict(make_snapshot(self_units=[make_unit(10, 'Skeleton', 7)]))
        actions = parse_actions([move(1, 10, 12), play(2, 5, 6)])
        topology = BoardTopology.build(snapshot, actions)

        assert 12 in topology.neighbors(7)
        assert 6 in topology.neighbors(2)
        assert topology.hop_distances(2) == {2: 0, 6: 1}
