"""
Fast-Path Heuristic Engine

Cheap deterministic checks that commit an obvious play without asking the
intent source. Checks run in a fixed order and the first hit wins:

1. end-turn is the only legal action
2. hero HP critical + safety-first profile -> play a defensive card
3. an attack that kills its target outright
4. direct hero strikes that add up to lethal
5. a kill on a configured priority target
6. the single legal attack, if it isn't a suicide trade
7. a move that sets up a strong attack (per the tactical preview)

Anything else returns ``should_continue`` with reason ``complex_situation``.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from .models import Action, ActionKind, Unit
from .name_resolver import normalize_name
from .perception import BattleView
from .strategy_config import get_config

logger = logging.getLogger(__name__)

DEFAULT_DEFENSIVE_CARDS = ('skeleton', 'fairy', 'tryx')
DEFAULT_HIGH_VALUE = ('cinda', 'ash')
DEFAULT_PRIORITY = ('cinda', 'ash', 'archer', 'crossbowman', 'manavault')


@dataclass
class FastPathResult:
    """Outcome of the fast-path check"""
    action_id: Optional[int]
    reason: str
    confidence: float = 0.0
    should_continue: bool = False  # hand off to the full pipeline

    @property
    def hit(self) -> bool:
        return self.action_id is not None and not self.should_continue


@dataclass
class FastPathOptions:
    """Profile knobs for the fast path"""
    aggressiveness: float = 0.5
    safety_first: bool = False


@dataclass
class FastPathStats:
    """Running counters of fast-path usage"""
    total: int = 0
    fast: int = 0
    continued: int = 0
    reasons: Counter = field(default_factory=Counter)

    def record(self, result: FastPathResult):
        self.total += 1
        if result.hit:
            self.fast += 1
        elif result.should_continue:
            self.continued += 1
        # Drop the per-target suffix so "lethal_kill_ash" counts as "lethal_kill"
        key = result.reason
        for prefix in ('lethal_kill', 'priority_kill', 'move_then_attack'):
            if key.startswith(prefix):
                key = prefix
        self.reasons[key] += 1

    @property
    def fast_rate(self) -> float:
        return self.fast / self.total if self.total else 0.0

    def as_dict(self) -> Dict[str, object]:
        return {
            'total': self.total,
            'fast': self.fast,
            'continued': self.continued,
            'fast_rate': round(self.fast_rate, 3),
            'reasons': dict(self.reasons),
        }


def _name_in(name: Optional[str], names: FrozenSet[str]) -> bool:
    normalized = normalize_name(name)
    return bool(normalized) and any(n in normalized for n in names)


class FastPathEngine:
    """
    Runs the ordered fast-path checks against a BattleView.
    """

    def __init__(self, options: Optional[FastPathOptions] = None,
                 stats: Optional[FastPathStats] = None):
        self.options = options or FastPathOptions()
        self.stats = stats or FastPathStats()

        cfg = get_config()
        self.critical_hp = cfg.get('fast_path', 'critical_hp', 5)
        self.defensive_cards = cfg.get_names('fast_path', 'defensive_cards', DEFAULT_DEFENSIVE_CARDS)
        self.high_value = cfg.get_names('fast_path', 'high_value_targets', DEFAULT_HIGH_VALUE)
        self.priority = cfg.get_names('fast_path', 'priority_targets', DEFAULT_PRIORITY)
        self.priority_threshold = cfg.get('fast_path', 'priority_kill_threshold', 0.85)
        self.single_attack_aggressiveness = cfg.get('fast_path', 'single_attack_aggressiveness', 0.3)
        self.move_attack_threshold = cfg.get('fast_path', 'move_attack_threshold', 0.8)

    def decide(self, view: BattleView) -> FastPathResult:
        result = self._decide(view)
        self.stats.record(result)
        if result.hit:
            logger.info(f"⚡ Fast path: action {result.action_id} ({result.reason}, "
                        f"confidence {result.confidence:.2f})")
        else:
            logger.debug(f"Fast path: {result.reason}")
        return result

    def _decide(self, view: BattleView) -> FastPathResult:
        actions = view.actions
        if not actions:
            return FastPathResult(None, 'no_actions_available')

        if len(actions) == 1 and actions[0].kind == ActionKind.END_TURN:
            return FastPathResult(actions[0].id, 'only_end_turn', 1.0)

        for check in (self._emergency_defense, self._lethal_kill, self._hero_lethal,
                      self._priority_kill, self._single_attack, self._move_then_attack):
            result = check(view)
            if result is not None:
                return result

        return FastPathResult(None, 'complex_situation', should_continue=True)

    # --- checks --------------------------------------------------------

    def _emergency_defense(self, view: BattleView) -> Optional[FastPathResult]:
        me = view.snapshot.me
        if not self.options.safety_first or me.hero_hp is None or me.hero_hp > self.critical_hp:
            return None
        candidates = []
        for play in view.plays:
            card = view.snapshot.hand_card(play.card_id)
            if card is None or not _name_in(card.name, self.defensive_cards):
                continue
            if me.mana is not None and card.mana_cost is not None and card.mana_cost > me.mana:
                continue
            candidates.append(play)
        if not candidates:
            return None
        # Closest to our hero
        hero_cell = me.hero_cell_index
        if hero_cell >= 0:
            candidates.sort(key=lambda a: view.zones.cell_distance(a.cell_index, hero_cell)
                            if a.cell_index is not None else 1 << 20)
        return FastPathResult(candidates[0].id, 'emergency_defense', 0.9)

    def _lethal_kill(self, view: BattleView) -> Optional[FastPathResult]:
        for attack in view.attacks:
            attacker = view.snapshot.unit(attack.attacker_unit_id)
            target = view.snapshot.unit(attack.target_unit_id)
            if attacker is None or target is None:
                continue
            if attacker.atk and target.hp and attacker.atk >= target.hp:
                return FastPathResult(attack.id, f'lethal_kill_{target.name}', 0.95)
        return None

    def _hero_lethal(self, view: BattleView) -> Optional[FastPathResult]:
        enemy_hp = view.snapshot.enemy.hero_hp
        if not enemy_hp or enemy_hp <= 0:
            return None
        strikes = [a for a in view.attacks if a.is_direct_strike]
        if not strikes:
            return None
        attackers: Dict[int, int] = {}
        for strike in strikes:
            unit = view.snapshot.unit(strike.attacker_unit_id)
            if unit is not None:
                attackers[unit.unit_id] = unit.atk or 0
        if sum(attackers.values()) >= enemy_hp:
            return FastPathResult(strikes[0].id, 'hero_lethal', 0.98)
        return None

    def _priority_kill(self, view: BattleView) -> Optional[FastPathResult]:
        best: Optional[Action] = None
        best_score = 0.0
        best_name = ''
        for attack in view.attacks:
            attacker = view.snapshot.unit(attack.attacker_unit_id)
            target = view.snapshot.unit(attack.target_unit_id)
            if attacker is None or target is None or not _name_in(target.name, self.priority):
                continue
            if (attacker.atk or 0) < (target.hp or 0):
                continue
            score = 0.95 if _name_in(target.name, self.high_value) else 0.88
            if score > best_score:
                best, best_score, best_name = attack, score, target.name
        if best is not None and best_score > self.priority_threshold:
            return FastPathResult(best.id, f'priority_kill_{best_name}', best_score)
        return None

    def _single_attack(self, view: BattleView) -> Optional[FastPathResult]:
        attacks = view.attacks
        if len(attacks) != 1 or self.options.aggressiveness <= self.single_attack_aggressiveness:
            return None
        attack = attacks[0]
        attacker = view.snapshot.unit(attack.attacker_unit_id)
        target = view.snapshot.unit(attack.target_unit_id)
        if attacker is not None and target is not None and self.is_suicide(attacker, target):
            logger.debug(f"Skipping single attack {attack.id}: suicide trade into {target.name}")
            return None
        return FastPathResult(attack.id, 'single_attack_option', 0.7)

    def _move_then_attack(self, view: BattleView) -> Optional[FastPathResult]:
        best: Optional[Action] = None
        best_conf = 0.0
        best_name = ''
        for move in view.moves:
            attacker = view.snapshot.unit(move.unit_id)
            if attacker is None:
                continue
            for row in view.preview_rows(move.unit_id):
                if row.to_cell_index != move.to_cell_index:
                    continue
                for target_id in row.targets:
                    conf, name = self._opportunity(view, attacker, target_id)
                    if conf > best_conf:
                        best, best_conf, best_name = move, conf, name
        if best is not None and best_conf >= self.move_attack_threshold:
            return FastPathResult(best.id, f'move_then_attack_{best_name}', best_conf)
        return None

    def _opportunity(self, view: BattleView, attacker: Unit, target_id: Optional[int]):
        conf = 0.7
        if target_id is None:
            enemy_hp = view.snapshot.enemy.hero_hp
            if enemy_hp and (attacker.atk or 0) >= enemy_hp:
                conf += 0.15
            return round(conf, 4), 'hero'
        target = view.snapshot.unit(target_id)
        if target is None:
            return 0.0, ''
        if attacker.atk and target.hp and attacker.atk >= target.hp:
            conf += 0.15
        if _name_in(target.name, self.high_value):
            conf += 0.1
        if _name_in(target.name, self.priority):
            conf += 0.05
        return round(conf, 4), target.name

    @staticmethod
    def is_suicide(attacker: Unit, target: Unit) -> bool:
        """Attacker dies to the counter-attack while the defender survives."""
        if attacker.hp is None or target.atk is None:
            return False
        attacker_dies = target.atk >= attacker.hp
        target_survives = target.hp is None or (attacker.atk or 0) < target.hp
        return attacker_dies and target_survives
