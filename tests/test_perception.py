"""
Tests for perception.py

Name decoration, board-height inference, roles, attack hints, hand summary
and graceful degradation on incomplete snapshots.
"""

from agent.models import Snapshot, Unit, parse_actions
from agent.perception import ENEMY_HERO_LABEL, classify_role, decorate_names, infer_board_height
from tests.board_fixtures import (
    attack, build_view, end_turn, make_card, make_snapshot, make_unit, move, play, preview_row,
)


class TestDecorateNames:
    """Tests for Name#N labels"""

    def test_ascending_id_order(self):
        """First by id keeps the bare name, later ones get #N"""
        units = [Unit(31, 'Tryx', 'enemy'), Unit(12, 'Tryx', 'enemy'), Unit(40, 'Ash', 'enemy')]
        assert decorate_names(units) == {12: 'Tryx', 31: 'Tryx#2', 40: 'Ash'}

    def test_per_side_counting(self):
        """Same name on both sides: each side counts separately"""
        snapshot = make_snapshot(
            self_units=[make_unit(10, 'Skeleton', 7)],
            enemy_units=[make_unit(20, 'Skeleton', 17)],
        )
        view = build_view(snapshot, [end_turn()])
        assert view.label(10) == 'Skeleton'
        assert view.label(20) == 'Skeleton'

    def test_hero_label(self):
        """A None target is the enemy hero"""
        view = build_view(make_snapshot(), [end_turn()])
        assert view.label(None) == ENEMY_HERO_LABEL


class TestBoardInference:
    """Tests for missing-geometry handling"""

    def test_height_from_max_cell(self):
        """Height derives from the largest cell index and the width"""
        snapshot = Snapshot.from_dict(make_snapshot(height=None))
        assert snapshot.board_height is None
        assert infer_board_height(snapshot, []) == 5

    def test_no_width_degrades(self):
        """Without a width zones are unknown and nothing raises"""
        snapshot = make_snapshot(self_units=[make_unit(10, 'Skeleton', 7)], width=None, height=None)
        view = build_view(snapshot, [move(1, 10, 12), end_turn()])
        unit_report = view.report.my_units[0]
        assert unit_report.zone == 'unknown'
        assert unit_report.moves[0]['zone'] == 'unknown'

    def test_empty_snapshot(self):
        """An empty dict still produces a report"""
        view = build_view({}, [])
        assert view.report.my_units == []
        assert view.report.tempo == 'even'


class TestRoles:
    """Tests for role heuristics"""

    def test_roles(self):
        assert classify_role(Unit(1, 'Hero', 'self', is_hero=True)) == 'hero'
        assert classify_role(Unit(2, 'Archer', 'self', hp=3, attack_range=3)) == 'sniper'
        assert classify_role(Unit(3, 'Golem', 'self', hp=12, attack_range=1)) == 'tank'
        assert classify_role(Unit(4, 'Fairy', 'self', hp=2)) == 'support'
        assert classify_role(Unit(5, 'Skeleton', 'self', hp=3)) == 'unit'


class TestReport:
    """Tests for the symbolic battle report"""

    def setup_method(self):
        self.snapshot = make_snapshot(
            self_units=[make_unit(10, 'Skeleton', 7, atk=2)],
            enemy_units=[make_unit(20, 'Ash', 17, hp=4), make_unit(21, 'Goblin', 13, hp=2)],
            hand=[make_card(5, 'Skeleton', 2), make_card(5, 'Skeleton', 2), make_card(6, 'Dragon', 9)],
            preview=[preview_row(10, 12, 20)],
        )
        self.actions = [attack(7, 10, 21), move(3, 10, 12), play(11, 5, 8), play(12, 5, 6), end_turn()]
        self.view = build_view(self.snapshot, self.actions)
        self.report = self.view.report

    def test_targets_now(self):
        """Immediate targets come from legal attacks"""
        assert self.report.my_units[0].targets_now == ['Goblin']

    def test_targets_after_move(self):
        """Preview rows give future targets with the enabling cell"""
        assert self.report.my_units[0].targets_after_move == [{'target': 'Ash', 'via_cell': 12}]

    def test_moves_carry_zone_and_targets(self):
        move_entry = self.report.my_units[0].moves[0]
        assert move_entry == {'to_cell': 12, 'zone': 'mid_center', 'targets': ['Ash']}

    def test_enemy_units_have_no_hints(self):
        assert self.report.enemy_units[0].targets_now == []

    def test_hand_summary(self):
        """Duplicate card ids collapse with a count, playable cells sorted"""
        hand = {c.card_id: c for c in self.report.hand}
        assert hand[5].count == 2
        assert hand[5].playable_cells == [6, 8]
        assert hand[5].affordable
        assert not hand[6].affordable
        assert hand[6].playable_cells == []

    def test_zone_and_role(self):
        unit_report = self.report.my_units[0]
        assert unit_report.zone == 'back_center'
        assert unit_report.role == 'unit'

    def test_hop_distances(self):
        """Hero distances come from BFS over the inferred graph"""
        # play edges hang cells 6 and 8 off our hero at cell 2
        assert self.view.my_hero_hops[8] == 1
        assert self.view.my_hero_hops[6] == 1

    def test_report_is_json_friendly(self):
        data = self.report.to_dict()
        assert data['me']['mana'] == 3
        assert data['can_end_turn'] is True
        assert isinstance(data['my_units'][0], dict)

    def test_legal_action_indexes(self):
        assert self.view.legal_ids == [7, 3, 11, 12, 99]
        assert self.view.enables_attack(self.view.action(3))


class TestTempo:
    """Tests for tempo and posture guesses"""

    def test_ahead(self):
        snapshot = make_snapshot(self_units=[make_unit(10, 'Golem', 7, hp=10, atk=5)])
        assert build_view(snapshot, [end_turn()]).report.tempo == 'ahead'

    def test_behind(self):
        snapshot = make_snapshot(enemy_units=[make_unit(20, 'Golem', 17, hp=10, atk=5)])
        assert build_view(snapshot, [end_turn()]).report.tempo == 'behind'

    def test_aggressive_posture(self):
        """Enemy units pushed past the midline toward our hero"""
        snapshot = make_snapshot(enemy_units=[make_unit(20, 'Goblin', 7), make_unit(21, 'Goblin', 8)])
        assert build_view(snapshot, [end_turn()]).report.opponent_posture == 'aggressive'

    def test_actions_parse_drops_unknown(self):
        """Unrecognized action payloads are dropped at the boundary"""
        actions = parse_actions([{'id': 1, 'dance': True}, end_turn(2), {'no_id': True}])
        assert [a.id for a in actions] == [2]
