"""
Core data models for the hero battle agent.

The game client sends loosely-shaped JSON: field names vary between client
builds (``unit_id`` vs ``id``, ``self`` vs ``you``, nested ``pos`` blocks...).
Everything is normalized exactly once here, at the boundary, into the
dataclasses below. Downstream code only ever reads these types.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


def _as_int(value: Any) -> Optional[int]:
    """Coerce a JSON scalar to int, or None when it isn't numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _first(data: Dict[str, Any], *keys: str) -> Any:
    """Return the first present, non-None value among synonym keys."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _present(data: Dict[str, Any], key: str) -> bool:
    return key in data and data[key] is not None and data[key] is not False


# =============================================================================
# Legal actions
# =============================================================================

class ActionKind(Enum):
    """The payload carried by a legal action"""
    PLAY_CARD = "play_card"
    MOVE_UNIT = "move_unit"
    UNIT_ATTACK = "unit_attack"
    HERO_POWER = "hero_power"
    END_TURN = "end_turn"


@dataclass(frozen=True)
class Action:
    """
    One engine-validated, currently submittable operation.

    The agent may only ever submit ids taken from this list; it never builds
    an Action of its own.
    """
    id: int
    kind: ActionKind

    # play_card
    card_id: Optional[int] = None
    cell_index: Optional[int] = None

    # move_unit
    unit_id: Optional[int] = None
    to_cell_index: Optional[int] = None

    # unit_attack (target None = direct strike on the enemy hero)
    attacker_unit_id: Optional[int] = None
    target_unit_id: Optional[int] = None

    @property
    def is_direct_strike(self) -> bool:
        return self.kind == ActionKind.UNIT_ATTACK and self.target_unit_id is None

    @property
    def actor_unit_id(self) -> Optional[int]:
        """The unit performing this action (mover or attacker)"""
        if self.kind == ActionKind.MOVE_UNIT:
            return self.unit_id
        if self.kind == ActionKind.UNIT_ATTACK:
            return self.attacker_unit_id
        return None

    @property
    def destination(self) -> Optional[int]:
        """Destination cell for plays and moves"""
        if self.kind == ActionKind.PLAY_CARD:
            return self.cell_index
        if self.kind == ActionKind.MOVE_UNIT:
            return self.to_cell_index
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['Action']:
        """
        Build an Action from the client's JSON.

        Returns None when the id is missing, no known payload is present,
        or the payload lacks the ids it needs to be actionable.
        """
        if not isinstance(data, dict):
            return None
        action_id = _as_int(data.get('id'))
        if action_id is None:
            return None

        if _present(data, 'end_turn'):
            return cls(id=action_id, kind=ActionKind.END_TURN)

        if _present(data, 'play_card'):
            payload = data['play_card'] if isinstance(data['play_card'], dict) else {}
            card_id = _as_int(payload.get('card_id'))
            if card_id is None:
                return None
            return cls(
                id=action_id,
                kind=ActionKind.PLAY_CARD,
                card_id=card_id,
                cell_index=_as_int(_first(payload, 'cell_index', 'to_cell_index')),
            )

        if _present(data, 'move_unit'):
            payload = data['move_unit'] if isinstance(data['move_unit'], dict) else {}
            unit_id = _as_int(payload.get('unit_id'))
            to_cell = _as_int(_first(payload, 'to_cell_index', 'cell_index'))
            if unit_id is None or to_cell is None:
                return None
            return cls(id=action_id, kind=ActionKind.MOVE_UNIT, unit_id=unit_id, to_cell_index=to_cell)

        if _present(data, 'unit_attack'):
            payload = data['unit_attack'] if isinstance(data['unit_attack'], dict) else {}
            attacker = _as_int(payload.get('attacker_unit_id'))
            if attacker is None:
                return None
            return cls(
                id=action_id,
                kind=ActionKind.UNIT_ATTACK,
                attacker_unit_id=attacker,
                target_unit_id=_as_int(payload.get('target_unit_id')),
            )

        if _present(data, 'hero_power'):
            payload = data['hero_power'] if isinstance(data['hero_power'], dict) else {}
            return cls(
                id=action_id,
                kind=ActionKind.HERO_POWER,
                cell_index=_as_int(payload.get('cell_index')),
            )

        return None


def parse_actions(raw_actions: Optional[Iterable[Any]]) -> List[Action]:
    """Normalize the legal action list, dropping anything unrecognizable."""
    actions = []
    for raw in raw_actions or []:
        if isinstance(raw, Action):
            actions.append(raw)
            continue
        action = Action.from_dict(raw)
        if action is None:
            logger.debug(f"Dropping unrecognized action payload: {raw}")
            continue
        actions.append(action)
    return actions


# =============================================================================
# Snapshot
# =============================================================================

@dataclass
class HandCard:
    """A card in our hand"""
    card_id: int
    name: str
    mana_cost: Optional[int] = None
    card_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['HandCard']:
        card_id = _as_int(_first(data, 'card_id', 'id'))
        if card_id is None:
            return None
        return cls(
            card_id=card_id,
            name=str(_first(data, 'name', 'label') or ''),
            mana_cost=_as_int(_first(data, 'mana_cost', 'cost')),
            card_type=_first(data, 'type', 'card_type'),
        )


@dataclass
class Unit:
    """A unit on the board (either side)"""
    unit_id: int
    name: str
    owner: str  # "self" or "enemy"
    hp: Optional[int] = None
    atk: Optional[int] = None
    max_hp: Optional[int] = None
    cell_index: int = -1
    can_attack: Optional[bool] = None
    attack_range: Optional[int] = None
    attack_type: Optional[str] = None
    is_hero: bool = False
    # Approximate distances some client builds compute themselves
    distance_to_self_hero: Optional[int] = None
    distance_to_enemy_hero: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], owner: str) -> Optional['Unit']:
        unit_id = _as_int(_first(data, 'unit_id', 'id'))
        if unit_id is None:
            return None
        pos = data.get('pos') if isinstance(data.get('pos'), dict) else {}
        cell = _as_int(_first(data, 'cell_index', 'cell'))
        if cell is None:
            cell = _as_int(pos.get('cell_index'))
        can_attack = data.get('can_attack')
        return cls(
            unit_id=unit_id,
            name=str(_first(data, 'name', 'label') or f'unit{unit_id}'),
            owner=owner,
            hp=_as_int(_first(data, 'hp', 'health', 'current_hp')),
            atk=_as_int(_first(data, 'atk', 'attack')),
            max_hp=_as_int(_first(data, 'max_hp', 'maxHp')),
            cell_index=cell if cell is not None else -1,
            can_attack=bool(can_attack) if can_attack is not None else None,
            attack_range=_as_int(_first(data, 'attack_range', 'range')),
            attack_type=_first(data, 'attack_type'),
            is_hero=bool(data.get('is_hero') or data.get('role') == 'hero'),
            distance_to_self_hero=_as_int(data.get('distance_to_self_hero')),
            distance_to_enemy_hero=_as_int(data.get('distance_to_enemy_hero')),
        )


@dataclass
class SideState:
    """Hero and resources for one side"""
    hero_hp: Optional[int] = None
    hero_cell_index: int = -1
    mana: Optional[int] = None
    hand: List[HandCard] = field(default_factory=list)
    hand_size: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'SideState':
        data = data if isinstance(data, dict) else {}
        hand = []
        for raw in data.get('hand') or []:
            if isinstance(raw, dict):
                card = HandCard.from_dict(raw)
                if card is not None:
                    hand.append(card)
        cell = _as_int(_first(data, 'hero_cell_index', 'hero_cell'))
        hand_size = _as_int(data.get('hand_size'))
        return cls(
            hero_hp=_as_int(_first(data, 'hero_hp', 'health', 'hp')),
            hero_cell_index=cell if cell is not None else -1,
            mana=_as_int(_first(data, 'mana', 'mana_left')),
            hand=hand,
            hand_size=hand_size if hand_size is not None else len(hand),
        )


@dataclass
class PreviewRow:
    """Move-then-attack preview: unit can move to a cell and then attack these targets"""
    unit_id: int
    to_cell_index: int
    # None entries are direct strikes on the enemy hero
    targets: List[Optional[int]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['PreviewRow']:
        unit_id = _as_int(data.get('unit_id'))
        to_cell = _as_int(_first(data, 'to_cell_index', 'cell_index'))
        if unit_id is None or to_cell is None:
            return None
        targets = []
        for attack in data.get('attacks') or []:
            if isinstance(attack, dict):
                targets.append(_as_int(attack.get('target_unit_id')))
        return cls(unit_id=unit_id, to_cell_index=to_cell, targets=targets)


@dataclass
class Snapshot:
    """One turn's authoritative game state, normalized"""
    turn: int = 0
    is_my_turn: bool = True
    board_width: Optional[int] = None
    board_height: Optional[int] = None
    me: SideState = field(default_factory=SideState)
    enemy: SideState = field(default_factory=SideState)
    self_units: List[Unit] = field(default_factory=list)
    enemy_units: List[Unit] = field(default_factory=list)
    preview: List[PreviewRow] = field(default_factory=list)

    def __post_init__(self):
        self._by_id: Dict[int, Unit] = {}
        for unit in self.self_units + self.enemy_units:
            self._by_id.setdefault(unit.unit_id, unit)

    def unit(self, unit_id: Optional[int]) -> Optional[Unit]:
        if unit_id is None:
            return None
        return self._by_id.get(unit_id)

    def is_enemy(self, unit_id: Optional[int]) -> bool:
        unit = self.unit(unit_id)
        return unit is not None and unit.owner == 'enemy'

    def hand_card(self, card_id: Optional[int]) -> Optional[HandCard]:
        for card in self.me.hand:
            if card.card_id == card_id:
                return card
        return None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Snapshot':
        """
        Normalize a raw snapshot dict.

        Never raises on missing or oddly-named fields; absent data simply
        stays None/empty and downstream logic degrades.
        """
        data = data if isinstance(data, dict) else {}
        me_raw = _first(data, 'self', 'you', 'me') or {}
        enemy_raw = _first(data, 'enemy', 'opponent') or {}
        board = data.get('board') if isinstance(data.get('board'), dict) else {}

        def units(key: str, side_raw: Dict[str, Any], owner: str) -> List[Unit]:
            raw_units = data.get(key)
            if raw_units is None and isinstance(side_raw, dict):
                raw_units = side_raw.get('units')
            result = []
            for raw in raw_units or []:
                if isinstance(raw, dict):
                    unit = Unit.from_dict(raw, owner)
                    if unit is not None:
                        result.append(unit)
            return result

        preview = []
        for raw in data.get('tactical_preview') or []:
            if isinstance(raw, dict):
                row = PreviewRow.from_dict(raw)
                if row is not None:
                    preview.append(row)

        self_units = units('self_units', me_raw, 'self')
        enemy_units = units('enemy_units', enemy_raw, 'enemy')
        me = SideState.from_dict(me_raw)
        enemy = SideState.from_dict(enemy_raw)

        # Some builds only list heroes as flagged units
        for side, side_units in ((me, self_units), (enemy, enemy_units)):
            if side.hero_cell_index < 0:
                hero = next((u for u in side_units if u.is_hero and u.cell_index >= 0), None)
                if hero is not None:
                    side.hero_cell_index = hero.cell_index
                    if side.hero_hp is None:
                        side.hero_hp = hero.hp

        is_my_turn = data.get('is_my_turn')
        return cls(
            turn=_as_int(data.get('turn')) or 0,
            is_my_turn=True if is_my_turn is None else bool(is_my_turn),
            board_width=_as_int(_first(board, 'width', 'w')) or _as_int(data.get('board_width')),
            board_height=_as_int(_first(board, 'height', 'h')) or _as_int(data.get('board_height')),
            me=me,
            enemy=enemy,
            self_units=self_units,
            enemy_units=enemy_units,
            preview=preview,
        )
