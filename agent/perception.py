"""
Board Abstraction (Perception)

Turns a normalized Snapshot plus the legal action list into:
- a BattleReport: symbolic, JSON-friendly summary handed to the intent
  source (roles, zones, hero distances, attack hints, hand summary)
- a BattleView: the internals the resolver and executor need (topology,
  zone classifier, decorated labels, action indexes)

Everything is rebuilt from scratch on every snapshot. Unit id is the only
stable identity; labels and zones may change between turns. Nothing here
raises on incomplete data: missing geometry gives zone ``unknown`` and
missing preview rows give empty hint lists.
"""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .models import Action, ActionKind, HandCard, Snapshot, Unit
from .name_resolver import normalize_name
from .strategy_config import get_config
from .topology import BoardTopology, ZoneClassifier

logger = logging.getLogger(__name__)

ENEMY_HERO_LABEL = "enemy hero"


# =============================================================================
# Report types
# =============================================================================

@dataclass
class UnitReport:
    """Symbolic view of one unit"""
    unit_id: int
    label: str
    name: str
    role: str
    zone: str
    cell_index: int
    hp: Optional[int] = None
    atk: Optional[int] = None
    can_attack: Optional[bool] = None
    hops_to_my_hero: Optional[int] = None
    hops_to_enemy_hero: Optional[int] = None
    targets_now: List[str] = field(default_factory=list)
    # [{"target": label, "via_cell": cell}]
    targets_after_move: List[Dict[str, Any]] = field(default_factory=list)
    # [{"to_cell": cell, "zone": zone, "targets": [labels]}]
    moves: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class HandSummary:
    """A hand card with where it can be played"""
    card_id: int
    name: str
    mana_cost: Optional[int]
    affordable: bool
    count: int = 1
    playable_cells: List[int] = field(default_factory=list)


@dataclass
class BattleReport:
    """What the intent source sees"""
    turn: int
    is_my_turn: bool
    board: Dict[str, Any]
    me: Dict[str, Any]
    enemy: Dict[str, Any]
    my_units: List[UnitReport] = field(default_factory=list)
    enemy_units: List[UnitReport] = field(default_factory=list)
    hand: List[HandSummary] = field(default_factory=list)
    tempo: str = "even"
    opponent_posture: str = "develop"
    can_end_turn: bool = False
    has_hero_power: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# Helpers
# =============================================================================

def infer_board_height(snapshot: Snapshot, actions: Sequence[Action]) -> Optional[int]:
    """Height from the snapshot, or derived from the largest cell index seen."""
    if snapshot.board_height:
        return snapshot.board_height
    width = snapshot.board_width
    if not width:
        return None
    cells = [u.cell_index for u in snapshot.self_units + snapshot.enemy_units]
    cells += [snapshot.me.hero_cell_index, snapshot.enemy.hero_cell_index]
    cells += [a.destination for a in actions if a.destination is not None]
    cells += [row.to_cell_index for row in snapshot.preview]
    cells = [c for c in cells if c is not None and c >= 0]
    if not cells:
        return None
    return max(cells) // width + 1


def decorate_names(units: Sequence[Unit]) -> Dict[int, str]:
    """
    Assign disambiguated labels per side.

    Units are counted in ascending-id order; the first of a name keeps the
    bare name, later ones get ``Name#2``, ``Name#3``...
    """
    counts: Dict[str, int] = defaultdict(int)
    labels = {}
    for unit in sorted(units, key=lambda u: u.unit_id):
        key = f"{normalize_name(unit.name)}|{unit.owner}"
        counts[key] += 1
        labels[unit.unit_id] = unit.name if counts[key] == 1 else f"{unit.name}#{counts[key]}"
    return labels


def classify_role(unit: Unit) -> str:
    """hero / sniper / tank / support / unit"""
    roles = get_config().get_section('roles')
    if unit.is_hero:
        return "hero"
    attack_range = unit.attack_range or 0
    if attack_range >= roles.get('sniper_min_range', 3) or (unit.attack_type or '').lower() == 'ranged':
        return "sniper"
    max_hp = unit.max_hp if unit.max_hp is not None else unit.hp
    if (max_hp or 0) >= roles.get('tank_min_hp', 10) and attack_range <= 1:
        return "tank"
    name = normalize_name(unit.name)
    keywords = roles.get('support_keywords', ['healer', 'fairy', 'generator'])
    if any(k in name for k in keywords):
        return "support"
    return "unit"


# =============================================================================
# Battle view
# =============================================================================

class BattleView:
    """
    Per-snapshot internals shared by the resolver, candidates and executor.

    Read-only: consumers copy the action lists before mutating pools.
    """

    def __init__(self, snapshot: Snapshot, actions: Sequence[Action],
                 topology: BoardTopology, zones: ZoneClassifier,
                 labels: Dict[int, str], my_hero_hops: Dict[int, int],
                 enemy_hero_hops: Dict[int, int]):
        self.snapshot = snapshot
        self.actions = list(actions)
        self.topology = topology
        self.zones = zones
        self.labels = labels
        self.my_hero_hops = my_hero_hops
        self.enemy_hero_hops = enemy_hero_hops
        self.report: Optional[BattleReport] = None
        self._by_id = {a.id: a for a in self.actions}

    # --- lookups -------------------------------------------------------

    def action(self, action_id: Optional[int]) -> Optional[Action]:
        return self._by_id.get(action_id)

    @property
    def legal_ids(self) -> List[int]:
        return [a.id for a in self.actions]

    def of_kind(self, kind: ActionKind) -> List[Action]:
        return [a for a in self.actions if a.kind == kind]

    @property
    def attacks(self) -> List[Action]:
        return self.of_kind(ActionKind.UNIT_ATTACK)

    @property
    def moves(self) -> List[Action]:
        return self.of_kind(ActionKind.MOVE_UNIT)

    @property
    def plays(self) -> List[Action]:
        return self.of_kind(ActionKind.PLAY_CARD)

    @property
    def end_turn(self) -> Optional[Action]:
        return next((a for a in self.actions if a.kind == ActionKind.END_TURN), None)

    @property
    def hero_power(self) -> Optional[Action]:
        return next((a for a in self.actions if a.kind == ActionKind.HERO_POWER), None)

    def label(self, unit_id: Optional[int]) -> str:
        if unit_id is None:
            return ENEMY_HERO_LABEL
        unit = self.snapshot.unit(unit_id)
        return self.labels.get(unit_id, unit.name if unit else f"unit{unit_id}")

    def zone_of(self, cell: Optional[int]) -> str:
        return self.zones.classify(cell)

    def preview_rows(self, unit_id: int):
        return [row for row in self.snapshot.preview if row.unit_id == unit_id]

    def enables_attack(self, move: Action) -> bool:
        """True when the preview says this move leads to an attack."""
        return any(
            row.unit_id == move.unit_id and row.to_cell_index == move.to_cell_index and row.targets
            for row in self.snapshot.preview
        )

    def card_name(self, card_id: Optional[int]) -> str:
        card = self.snapshot.hand_card(card_id)
        return card.name if card else f"card{card_id}"


# =============================================================================
# Perception
# =============================================================================

class Perception:
    """Builds BattleReport + BattleView from one snapshot."""

    def observe(self, snapshot: Snapshot, actions: Sequence[Action]) -> BattleView:
        height = infer_board_height(snapshot, actions)
        zones = ZoneClassifier(snapshot.board_width, height,
                               snapshot.me.hero_cell_index, snapshot.enemy.hero_cell_index)
        topology = BoardTopology.build(snapshot, actions)
        labels = decorate_names(snapshot.self_units)
        labels.update(decorate_names(snapshot.enemy_units))

        view = BattleView(
            snapshot=snapshot,
            actions=actions,
            topology=topology,
            zones=zones,
            labels=labels,
            my_hero_hops=topology.hop_distances(snapshot.me.hero_cell_index),
            enemy_hero_hops=topology.hop_distances(snapshot.enemy.hero_cell_index),
        )
        view.report = self._build_report(view, height)
        logger.debug(f"Perception: turn {snapshot.turn}, {len(snapshot.self_units)} vs "
                     f"{len(snapshot.enemy_units)} units, {len(actions)} legal actions, "
                     f"tempo={view.report.tempo}")
        return view

    def _build_report(self, view: BattleView, height: Optional[int]) -> BattleReport:
        snapshot = view.snapshot
        zones = view.zones
        my_units = [self._unit_report(view, u) for u in snapshot.self_units]
        enemy_units = [self._unit_report(view, u) for u in snapshot.enemy_units]

        return BattleReport(
            turn=snapshot.turn,
            is_my_turn=snapshot.is_my_turn,
            board={
                'width': snapshot.board_width,
                'height': height,
                'forward': zones.forward_dir,
            },
            me={
                'hero_hp': snapshot.me.hero_hp,
                'hero_cell_index': snapshot.me.hero_cell_index,
                'hero_zone': zones.classify(snapshot.me.hero_cell_index),
                'mana': snapshot.me.mana,
                'hand_size': snapshot.me.hand_size,
            },
            enemy={
                'hero_hp': snapshot.enemy.hero_hp,
                'hero_cell_index': snapshot.enemy.hero_cell_index,
                'hero_zone': zones.classify(snapshot.enemy.hero_cell_index),
                'hand_size': snapshot.enemy.hand_size,
            },
            my_units=my_units,
            enemy_units=enemy_units,
            hand=self._hand_summary(view),
            tempo=self._tempo(snapshot),
            opponent_posture=self._opponent_posture(view),
            can_end_turn=view.end_turn is not None,
            has_hero_power=view.hero_power is not None,
        )

    def _unit_report(self, view: BattleView, unit: Unit) -> UnitReport:
        report = UnitReport(
            unit_id=unit.unit_id,
            label=view.label(unit.unit_id),
            name=unit.name,
            role=classify_role(unit),
            zone=view.zone_of(unit.cell_index),
            cell_index=unit.cell_index,
            hp=unit.hp,
            atk=unit.atk,
            can_attack=unit.can_attack,
            hops_to_my_hero=view.my_hero_hops.get(unit.cell_index, unit.distance_to_self_hero),
            hops_to_enemy_hero=view.enemy_hero_hops.get(unit.cell_index, unit.distance_to_enemy_hero),
        )
        if unit.owner != 'self':
            return report

        for attack in view.attacks:
            if attack.attacker_unit_id == unit.unit_id:
                report.targets_now.append(view.label(attack.target_unit_id))

        reachable: Dict[int, List[str]] = defaultdict(list)
        for row in view.preview_rows(unit.unit_id):
            for target in row.targets:
                target_label = view.label(target)
                reachable[row.to_cell_index].append(target_label)
                report.targets_after_move.append({'target': target_label, 'via_cell': row.to_cell_index})

        for move in view.moves:
            if move.unit_id == unit.unit_id:
                report.moves.append({
                    'to_cell': move.to_cell_index,
                    'zone': view.zone_of(move.to_cell_index),
                    'targets': reachable.get(move.to_cell_index, []),
                })
        return report

    def _hand_summary(self, view: BattleView) -> List[HandSummary]:
        mana = view.snapshot.me.mana
        cells: Dict[int, List[int]] = defaultdict(list)
        for play in view.plays:
            if play.cell_index is not None and play.cell_index not in cells[play.card_id]:
                cells[play.card_id].append(play.cell_index)

        summary: Dict[int, HandSummary] = {}
        for card in view.snapshot.me.hand:
            if card.card_id in summary:
                summary[card.card_id].count += 1
                continue
            summary[card.card_id] = HandSummary(
                card_id=card.card_id,
                name=card.name,
                mana_cost=card.mana_cost,
                affordable=_affordable(card, mana),
                playable_cells=sorted(cells.get(card.card_id, [])),
            )
        return list(summary.values())

    def _tempo(self, snapshot: Snapshot) -> str:
        def strength(units: List[Unit]) -> int:
            return sum((u.atk or 0) + (u.hp or 0) for u in units if not u.is_hero)

        board = strength(snapshot.self_units) - strength(snapshot.enemy_units)
        heroes = (snapshot.me.hero_hp or 0) - (snapshot.enemy.hero_hp or 0)
        score = board + heroes / 2
        if score > 5:
            return "ahead"
        if score < -5:
            return "behind"
        return "even"

    def _opponent_posture(self, view: BattleView) -> str:
        """Guess from how far enemy units have pushed toward our hero."""
        zones = view.zones
        positions = [
            zones.forward(u.cell_index)
            for u in view.snapshot.enemy_units
            if not u.is_hero and u.cell_index >= 0
        ]
        positions = [p for p in positions if p is not None]
        if not positions or not zones.span:
            return "develop"
        half = zones.span / 2
        advanced = sum(1 for p in positions if p <= half)
        if advanced * 2 > len(positions):
            return "aggressive"
        if advanced == 0 and len(positions) >= 2:
            return "defensive"
        return "develop"


def _affordable(card: HandCard, mana: Optional[int]) -> bool:
    if card.mana_cost is None or mana is None:
        return True
    return card.mana_cost <= mana
