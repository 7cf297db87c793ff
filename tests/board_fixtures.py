"""
Snapshot and action builders shared by the test modules.

Default board: 5 x 5, our hero at cell 2 (row 0), enemy hero at cell 22
(row 4), so "forward" is increasing row. Zones on this board:

    row 0-1 -> back, row 2 -> mid, row 3-4 -> front
    col 0-1 -> left, col 2-3 -> center, col 4 -> right
"""

from typing import Any, Dict, List, Optional

from agent.models import Snapshot, parse_actions
from agent.perception import BattleView, Perception


def make_unit(unit_id: int, name: str, cell: int, hp: Optional[int] = 3,
              atk: Optional[int] = 2, **extra) -> Dict[str, Any]:
    unit = {'unit_id': unit_id, 'name': name, 'cell_index': cell, 'hp': hp, 'atk': atk,
            'can_attack': True}
    unit.update(extra)
    return unit


def make_card(card_id: int, name: str, cost: int) -> Dict[str, Any]:
    return {'card_id': card_id, 'name': name, 'mana_cost': cost}


def make_snapshot(self_units: Optional[List[Dict]] = None,
                  enemy_units: Optional[List[Dict]] = None,
                  hand: Optional[List[Dict]] = None,
                  preview: Optional[List[Dict]] = None,
                  mana: int = 3, hero_hp: int = 20, enemy_hero_hp: int = 20,
                  turn: int = 3, width: Optional[int] = 5, height: Optional[int] = 5,
                  **overrides) -> Dict[str, Any]:
    board = {}
    if width is not None:
        board['width'] = width
    if height is not None:
        board['height'] = height
    snapshot = {
        'turn': turn,
        'is_my_turn': True,
        'board': board,
        'self': {'hero_hp': hero_hp, 'hero_cell_index': 2, 'mana': mana, 'hand': hand or []},
        'enemy': {'hero_hp': enemy_hero_hp, 'hero_cell_index': 22, 'hand_size': 4},
        'self_units': self_units or [],
        'enemy_units': enemy_units or [],
        'tactical_preview': preview or [],
    }
    snapshot.update(overrides)
    return snapshot


def preview_row(unit_id: int, to_cell: int, *targets: Optional[int]) -> Dict[str, Any]:
    return {'unit_id': unit_id, 'to_cell_index': to_cell,
            'attacks': [{'target_unit_id': t} for t in targets]}


def attack(action_id: int, attacker: int, target: Optional[int] = None) -> Dict[str, Any]:
    payload = {'attacker_unit_id': attacker}
    if target is not None:
        payload['target_unit_id'] = target
    return {'id': action_id, 'unit_attack': payload}


def move(action_id: int, unit_id: int, to_cell: int) -> Dict[str, Any]:
    return {'id': action_id, 'move_unit': {'unit_id': unit_id, 'to_cell_index': to_cell}}


def play(action_id: int, card_id: int, cell: int) -> Dict[str, Any]:
    return {'id': action_id, 'play_card': {'card_id': card_id, 'cell_index': cell}}


def end_turn(action_id: int = 99) -> Dict[str, Any]:
    return {'id': action_id, 'end_turn': True}


def hero_power(action_id: int = 98) -> Dict[str, Any]:
    return {'id': action_id, 'hero_power': {}}


def build_view(snapshot: Dict[str, Any], actions: List[Dict[str, Any]]) -> BattleView:
    return Perception().observe(Snapshot.from_dict(snapshot), parse_actions(actions))
