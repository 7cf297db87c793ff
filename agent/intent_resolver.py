"""
Intent Resolver

Maps an ordered list of high-level intents onto concrete legal action ids.

Intents are processed by priority (1 = most urgent, ties keep input order)
against a working copy of the legal action pool. Every commit is visible to
the intents after it:
- a committed id leaves the pool
- a unit that attacks (or repositions) loses its remaining moves and attacks
- a unit that moves to set up an attack loses its remaining moves only
- a card that is played loses its other placements, and the cell it took
  can't be reused

Failures are per-intent: a structured IntentError is recorded and the next
intent is tried. Nothing here raises past ``resolve``.
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .intents import Intent, IntentParseError, Verb
from .models import Action, ActionKind, Unit
from .name_resolver import FuzzyResolver, is_hero_marker, normalize_name
from .perception import BattleView
from .strategy_config import get_config
from .topology import parse_zone

logger = logging.getLogger(__name__)

DEFAULT_MAX_IDS = 6

DEFAULT_THREATS = {
    'cinda': 60,
    'ash': 50,
    'archer': 40,
    'crossbowman': 40,
}


class ErrorCode(str, Enum):
    UNIT_NOT_FOUND = "UNIT_NOT_FOUND"
    NO_ATTACK = "NO_ATTACK"
    NO_MOVE = "NO_MOVE"
    NO_MANA = "NO_MANA"
    UNKNOWN_VERB = "UNKNOWN_VERB"
    INVALID_SUBJECT = "INVALID_SUBJECT"
    CARD_NOT_FOUND = "CARD_NOT_FOUND"
    NO_PLAY = "NO_PLAY"
    NO_END_TURN = "NO_END_TURN"


@dataclass(frozen=True)
class ChainHint:
    """Attack to attempt once the preceding move is confirmed"""
    attacker_unit_id: int
    preferred_target_unit_id: Optional[int] = None  # None = any target / enemy hero
    kind: str = "attack_after_move"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IntentError:
    index: int
    code: ErrorCode
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {'index': self.index, 'code': self.code.value, 'message': self.message}


@dataclass
class ResolvedPlan:
    """Deduplicated, capped, ordered action ids plus diagnostics"""
    ok: bool = False
    action_ids: List[int] = field(default_factory=list)
    chains: List[ChainHint] = field(default_factory=list)
    explain: List[str] = field(default_factory=list)
    errors: List[IntentError] = field(default_factory=list)
    remaining_mana: Optional[int] = None
    capped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ok': self.ok,
            'action_ids': list(self.action_ids),
            'chains': [c.to_dict() for c in self.chains],
            'explain': list(self.explain),
            'errors': [e.to_dict() for e in self.errors],
            'remaining_mana': self.remaining_mana,
        }


class ActionPool:
    """
    Mutable working copy of the legal actions for one resolution pass.
    """

    def __init__(self, actions: Sequence[Action]):
        self.attacks = [a for a in actions if a.kind == ActionKind.UNIT_ATTACK]
        self.moves = [a for a in actions if a.kind == ActionKind.MOVE_UNIT]
        self.plays = [a for a in actions if a.kind == ActionKind.PLAY_CARD]
        self.end_turn = next((a for a in actions if a.kind == ActionKind.END_TURN), None)
        self.hero_power = next((a for a in actions if a.kind == ActionKind.HERO_POWER), None)

    def attacks_of(self, unit_id: int) -> List[Action]:
        return [a for a in self.attacks if a.attacker_unit_id == unit_id]

    def moves_of(self, unit_id: int) -> List[Action]:
        return [a for a in self.moves if a.unit_id == unit_id]

    def move_to(self, unit_id: int, cell: int) -> Optional[Action]:
        return next((a for a in self.moves if a.unit_id == unit_id and a.to_cell_index == cell), None)

    def plays_of(self, card_id: int) -> List[Action]:
        return [a for a in self.plays if a.card_id == card_id]

    def discard(self, action_id: int):
        self.attacks = [a for a in self.attacks if a.id != action_id]
        self.moves = [a for a in self.moves if a.id != action_id]
        self.plays = [a for a in self.plays if a.id != action_id]
        if self.end_turn is not None and self.end_turn.id == action_id:
            self.end_turn = None
        if self.hero_power is not None and self.hero_power.id == action_id:
            self.hero_power = None

    def retire_unit(self, unit_id: int, attacks: bool = True):
        """Drop a unit's remaining moves (and by default its attacks)"""
        self.moves = [a for a in self.moves if a.unit_id != unit_id]
        if attacks:
            self.attacks = [a for a in self.attacks if a.attacker_unit_id != unit_id]

    def retire_play(self, card_id: Optional[int], cell: Optional[int]):
        """A card was played into a cell: the card and the cell are both spent"""
        self.plays = [a for a in self.plays if a.card_id != card_id and a.cell_index != cell]


class _Pass:
    """Per-call resolution state"""

    def __init__(self, view: BattleView):
        self.view = view
        self.pool = ActionPool(view.actions)
        self.mana = view.snapshot.me.mana
        self.turn_ended = False


class IntentResolver:
    """
    Resolves intents into a ResolvedPlan.

    Args:
        names: Fuzzy name resolver (alias registry is injectable through it)
        max_ids: Cap on committed ids per plan
        strict: When True, a plan with zero ids is never ``ok``
    """

    def __init__(self, names: Optional[FuzzyResolver] = None,
                 max_ids: Optional[int] = None, strict: Optional[bool] = None):
        cfg = get_config()
        self.names = names or FuzzyResolver(
            min_confidence=cfg.get('resolver', 'min_confidence', 0.6))
        self.max_ids = max_ids if max_ids is not None else cfg.get('resolver', 'max_ids', DEFAULT_MAX_IDS)
        self.strict = strict if strict is not None else cfg.get('resolver', 'strict', True)

        values = cfg.get_section('target_values')
        self.threats = {normalize_name(k): v for k, v in values.get('threats', DEFAULT_THREATS).items()}
        self.hero_value = values.get('hero', 55)
        self.ranged_bonus = values.get('ranged_bonus', 20)
        self.low_hp_cap = values.get('low_hp_cap', 30)
        self.kill_bonus = values.get('kill_bonus', 25)

        self._handlers: Dict[Verb, Callable[[int, Intent, _Pass, ResolvedPlan], None]] = {
            Verb.END_TURN: self._end_turn,
            Verb.HOLD: self._hold,
            Verb.DEPLOY: self._deploy,
            Verb.POSITION: self._position,
            Verb.SCREEN: self._position,
            Verb.PROTECT: self._position,
            Verb.KILL: self._attack,
            Verb.ATTACK: self._attack,
            Verb.POKE: self._attack,
        }

    def resolve(self, intents: Sequence[Any], view: BattleView) -> ResolvedPlan:
        """
        Resolve raw intent dicts (or Intent objects) against the current view.

        Error indexes refer to the position in ``intents`` as passed in.
        """
        plan = ResolvedPlan()
        parsed: List[Tuple[int, Intent]] = []
        for index, raw in enumerate(intents or []):
            try:
                parsed.append((index, Intent.from_dict(raw)))
            except IntentParseError as e:
                self._fail(plan, index, ErrorCode.UNKNOWN_VERB, str(e))

        parsed.sort(key=lambda pair: pair[1].priority)
        state = _Pass(view)

        for index, intent in parsed:
            plan.explain.append(f"intent#{index}: {intent.describe()}")
            if state.turn_ended:
                plan.explain.append("  skipped: turn already ended")
                continue
            self._handlers[intent.verb](index, intent, state, plan)

        plan.remaining_mana = state.mana
        plan.ok = bool(plan.action_ids) or (not self.strict and not plan.errors)
        logger.info(f"🧭 Resolved {len(parsed)} intents -> ids={plan.action_ids}, "
                    f"chains={len(plan.chains)}, errors={len(plan.errors)}, ok={plan.ok}")
        for line in plan.explain:
            logger.debug(line)
        return plan

    # --- bookkeeping ---------------------------------------------------

    def _commit(self, plan: ResolvedPlan, state: _Pass, action: Action, note: str) -> bool:
        if action.id in plan.action_ids:
            return False
        if len(plan.action_ids) >= self.max_ids:
            if not plan.capped:
                plan.explain.append(f"  cap of {self.max_ids} ids reached, ignoring further commits")
                plan.capped = True
            return False
        plan.action_ids.append(action.id)
        state.pool.discard(action.id)
        plan.explain.append(f"  commit {action.id}: {note}")
        return True

    def _fail(self, plan: ResolvedPlan, index: int, code: ErrorCode, message: str):
        plan.errors.append(IntentError(index, code, message))
        plan.explain.append(f"  error {code.value}: {message}")

    def find_own_unit(self, view: BattleView, name: Optional[str]) -> Optional[Unit]:
        if not name:
            return None
        match = self.names.resolve_unit(name, view.snapshot.self_units, view.labels)
        return match.item if match.matched else None

    def find_enemy_unit(self, view: BattleView, name: Optional[str]) -> Optional[Unit]:
        if not name:
            return None
        match = self.names.resolve_unit(name, view.snapshot.enemy_units, view.labels)
        return match.item if match.matched else None

    # --- verbs ---------------------------------------------------------

    def _hold(self, index: int, intent: Intent, state: _Pass, plan: ResolvedPlan):
        plan.explain.append("  hold: no action")

    def _end_turn(self, index: int, intent: Intent, state: _Pass, plan: ResolvedPlan):
        end = state.pool.end_turn
        if end is None:
            self._fail(plan, index, ErrorCode.NO_END_TURN, "end turn is not a legal action")
            return
        if state.pool.attacks:
            plan.explain.append(f"  end turn deferred: {len(state.pool.attacks)} attacks still available")
            return
        if self._commit(plan, state, end, "end turn"):
            state.turn_ended = True

    def _deploy(self, index: int, intent: Intent, state: _Pass, plan: ResolvedPlan):
        view = state.view
        card_name = intent.hand_card_name
        if card_name is None:
            self._fail(plan, index, ErrorCode.INVALID_SUBJECT,
                       f"deploy subject must read Hand(CardName), got '{intent.subject}'")
            return

        hand = view.snapshot.me.hand
        match = self.names.resolve_card(card_name, hand, max_mana_cost=state.mana)
        if not match.matched:
            any_cost = self.names.resolve_card(card_name, hand)
            if any_cost.matched:
                self._fail(plan, index, ErrorCode.NO_MANA,
                           f"{any_cost.item.name} costs {any_cost.item.mana_cost}, {state.mana} mana left")
            else:
                self._fail(plan, index, ErrorCode.CARD_NOT_FOUND, f"no card '{card_name}' in hand")
            return

        card = match.item
        plays = state.pool.plays_of(card.card_id)
        if not plays:
            self._fail(plan, index, ErrorCode.NO_PLAY, f"no legal placement for {card.name}")
            return

        zone = parse_zone(intent.target)
        if zone is not None:
            depth, lane = zone
            best = max(plays, key=lambda a: (view.zones.matches(a.cell_index, depth, lane),
                                             view.zones.zone_score(a.cell_index, depth, lane)))
        else:
            best = plays[0]

        if self._commit(plan, state, best,
                        f"play {card.name} at cell {best.cell_index} ({view.zone_of(best.cell_index)})"):
            if state.mana is not None and card.mana_cost is not None:
                state.mana -= card.mana_cost
            state.pool.retire_play(card.card_id, best.cell_index)

    def _position(self, index: int, intent: Intent, state: _Pass, plan: ResolvedPlan):
        view = state.view
        unit = self.find_own_unit(view, intent.subject)
        if unit is None:
            self._fail(plan, index, ErrorCode.UNIT_NOT_FOUND, f"no own unit matches '{intent.subject}'")
            return
        moves = state.pool.moves_of(unit.unit_id)
        if not moves:
            self._fail(plan, index, ErrorCode.NO_MOVE, f"{view.label(unit.unit_id)} has no legal move")
            return

        depth, lane = self.target_zone(intent, view)
        best = max(moves, key=lambda a: view.zones.zone_score(a.to_cell_index, depth, lane))
        if self._commit(plan, state, best,
                        f"move {view.label(unit.unit_id)} to cell {best.to_cell_index} "
                        f"({view.zone_of(best.to_cell_index)})"):
            state.pool.retire_unit(unit.unit_id)

    def target_zone(self, intent: Intent, view: BattleView) -> Tuple[Optional[str], Optional[str]]:
        """Requested zone: a zone label, or the zone around a named unit/hero."""
        zone = parse_zone(intent.target)
        if zone is not None:
            return zone
        if not intent.target:
            return None, None

        snapshot = view.snapshot
        guarding = intent.verb in (Verb.SCREEN, Verb.PROTECT)
        if is_hero_marker(intent.target):
            cell = snapshot.me.hero_cell_index if guarding else snapshot.enemy.hero_cell_index
        else:
            lookups = (self.find_own_unit, self.find_enemy_unit) if guarding else (self.find_enemy_unit, self.find_own_unit)
            unit = None
            for lookup in lookups:
                unit = lookup(view, intent.target)
                if unit is not None:
                    break
            cell = unit.cell_index if unit is not None else -1

        zone = parse_zone(view.zone_of(cell))
        return zone if zone is not None else (None, None)

    def _attack(self, index: int, intent: Intent, state: _Pass, plan: ResolvedPlan):
        view = state.view
        pool = state.pool
        unit = self.find_own_unit(view, intent.subject)
        if unit is None:
            self._fail(plan, index, ErrorCode.UNIT_NOT_FOUND, f"no own unit matches '{intent.subject}'")
            return
        attacker_label = view.label(unit.unit_id)

        hero_target = bool(intent.target) and is_hero_marker(intent.target)
        target = None if hero_target else self.find_enemy_unit(view, intent.target)
        if intent.target and not hero_target and target is None:
            plan.explain.append(f"  target '{intent.target}' not found, choosing best available")
        target_id = target.unit_id if target is not None else None

        def wanted(target_unit_id: Optional[int]) -> bool:
            if hero_target:
                return target_unit_id is None
            return target is not None and target_unit_id == target_id

        # (a) attack now
        attacks = pool.attacks_of(unit.unit_id)
        exact = next((a for a in attacks if wanted(a.target_unit_id)), None)
        if exact is not None:
            chosen, note = exact, "exact target"
        elif attacks:
            chosen = max(attacks, key=lambda a: self.target_value(view, unit, a.target_unit_id))
            note = "best-value target"
        else:
            chosen = None
        if chosen is not None:
            if self._commit(plan, state, chosen,
                            f"{attacker_label} attacks {view.label(chosen.target_unit_id)} ({note})"):
                pool.retire_unit(unit.unit_id)
            return

        # (b) move into range, attack after the move lands
        options = []
        for row in view.preview_rows(unit.unit_id):
            move = pool.move_to(unit.unit_id, row.to_cell_index)
            if move is None:
                continue
            for preview_target in row.targets:
                score = 10 + (80 if wanted(preview_target) else 0)
                options.append((score, move, preview_target))
        if options:
            score, move, preview_target = max(options, key=lambda o: o[0])
            # The hint names whatever this move actually brings into range
            if self._commit(plan, state, move,
                            f"move {attacker_label} to cell {move.to_cell_index} to attack "
                            f"{view.label(preview_target)}"):
                pool.retire_unit(unit.unit_id, attacks=False)
                plan.chains.append(ChainHint(unit.unit_id, preview_target))
            return

        # (c) walk toward the named target
        if target is not None or hero_target:
            goal = target.cell_index if target is not None else view.snapshot.enemy.hero_cell_index
            moves = pool.moves_of(unit.unit_id)
            if moves:
                zone = parse_zone(view.zone_of(goal)) or (None, None)
                best = max(moves, key=lambda a: (
                    view.zones.zone_score(a.to_cell_index, *zone),
                    -view.zones.cell_distance(a.to_cell_index, goal) if goal >= 0 else 0,
                ))
                if self._commit(plan, state, best,
                                f"move {attacker_label} to cell {best.to_cell_index}: "
                                f"move toward target for future attack"):
                    pool.retire_unit(unit.unit_id, attacks=False)
                return

        self._fail(plan, index, ErrorCode.NO_ATTACK,
                   f"{attacker_label} has no attack or approach toward '{intent.target or 'any target'}'")

    # --- scoring -------------------------------------------------------

    def target_value(self, view: BattleView, attacker: Unit, target_unit_id: Optional[int]) -> float:
        """
        How much we want to hit this target.

        Rewards known threats, ranged units, low HP and outright kills.
        A None target is a direct strike on the enemy hero.
        """
        if target_unit_id is None:
            score = float(self.hero_value)
            enemy_hp = view.snapshot.enemy.hero_hp
            if enemy_hp and (attacker.atk or 0) >= enemy_hp:
                score += self.kill_bonus
            return score

        target = view.snapshot.unit(target_unit_id)
        if target is None:
            return 0.0
        name = normalize_name(target.name)
        score = float(max((v for k, v in self.threats.items() if k in name), default=0))
        if (target.attack_type or '').lower() == 'ranged' or (target.attack_range or 0) >= 2:
            score += self.ranged_bonus
        if target.hp is not None:
            score += max(0, self.low_hp_cap - min(self.low_hp_cap, target.hp))
            if attacker.atk and attacker.atk >= target.hp:
                score += self.kill_bonus
        return score
