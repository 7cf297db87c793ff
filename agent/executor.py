"""
Execution / Retry Engine

Turns plan steps into submissions on the game client's action channel.

Two modes:
- batch: resolve every pending step in one pass and submit each id
- single: return only the first resolvable step's id (the caller submits it
  and comes back after the next snapshot)

Steps move pending -> queued -> executed. Queued steps are never submitted
again, so polling the same plan repeatedly is harmless. A step that can't be
resolved stays pending and is retried on the next snapshot.

If nothing at all resolves, the safe fallback picks the first legal action
by a fixed priority so the turn always advances:

    attack > move that sets up an attack > play card > hero power > move > end turn
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .intent_resolver import ChainHint, ResolvedPlan
from .models import Action, ActionKind
from .name_resolver import FuzzyResolver, is_hero_marker
from .perception import BattleView
from .runtime_state import PlanStep, RuntimeDecisionState, StepStatus
from .topology import parse_zone

logger = logging.getLogger(__name__)

LEGACY_STEP_TYPES = ('play', 'play_card', 'move', 'attack', 'move_then_attack', 'hero_power', 'end_turn')


@dataclass
class BatchResult:
    """What one batch pass did"""
    submitted: List[int] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    deferred: int = 0
    fallback_id: Optional[int] = None

    @property
    def used_fallback(self) -> bool:
        return self.fallback_id is not None


@dataclass
class SingleStepResult:
    action_id: Optional[int]
    reason: str
    step: Optional[PlanStep] = None


class _Claims:
    """Ids and cells already taken during one pass"""

    def __init__(self):
        self.ids: Set[int] = set()
        self.cells: Set[int] = set()

    def claim(self, action: Action):
        self.ids.add(action.id)
        if action.destination is not None:
            self.cells.add(action.destination)

    def free(self, action: Action) -> bool:
        if action.id in self.ids:
            return False
        return action.destination is None or action.destination not in self.cells


class ExecutionEngine:
    """
    Resolves and submits plan steps.

    Args:
        send: Callable that writes one action id to the game client.
              Submission is fire-and-forget; confirmation arrives with the
              next snapshot.
        names: Fuzzy resolver used by flat steps that carry names
    """

    def __init__(self, send: Optional[Callable[[int], None]] = None,
                 names: Optional[FuzzyResolver] = None):
        self.send = send
        self.names = names or FuzzyResolver()

    # =========================================================================
    # Building steps
    # =========================================================================

    def steps_from_plan(self, plan: ResolvedPlan, view: BattleView) -> List[PlanStep]:
        steps = []
        for action_id in plan.action_ids:
            step = PlanStep.for_action(action_id, note='resolved')
            action = view.action(action_id)
            if action is not None and action.actor_unit_id is not None:
                step.params['unit_id'] = action.actor_unit_id
            steps.append(step)
        return steps

    @staticmethod
    def steps_from_legacy(raw_steps: Iterable[Dict[str, Any]]) -> List[PlanStep]:
        """
        Adapt a flat step list, e.g.::

            [{"type": "attack", "attacker": "Tryx", "target": "hero"},
             {"type": "play", "card": "Skeleton", "hint": "front_center"},
             {"type": "end_turn"}]
        """
        steps = []
        for raw in raw_steps or []:
            if not isinstance(raw, dict):
                continue
            kind = str(raw.get('type') or '').lower()
            if kind not in LEGACY_STEP_TYPES:
                logger.warning(f"Ignoring unknown step type '{raw.get('type')}'")
                continue
            params = {k: v for k, v in raw.items() if k != 'type'}
            steps.append(PlanStep(kind=kind, params=params, note='legacy'))
        return steps

    # =========================================================================
    # Modes
    # =========================================================================

    def run_batch(self, state: RuntimeDecisionState, view: BattleView) -> BatchResult:
        """Submit every still-pending step that resolves against this snapshot."""
        result = BatchResult()
        state.reconcile(view.legal_ids)
        claims = _Claims()
        pending = state.pending_steps()
        deferred: List[PlanStep] = []

        for step in pending:
            if state.chains and self._is_end_turn(step, view):
                deferred.append(step)
                continue
            self._try_step(step, state, view, claims, result)

        self._follow_chains(state, view, claims, result)

        if not state.chains:
            for step in deferred:
                self._try_step(step, state, view, claims, result)
        else:
            result.deferred = len(deferred)

        nothing_in_flight = not state.steps and not state.chains
        if not result.submitted and not result.deferred and (pending or nothing_in_flight):
            self._fallback(state, view, result)

        if result.submitted:
            logger.info(f"📤 Batch rev {state.revision}: submitted {result.submitted}"
                        + (f", skipped {len(result.skipped)}" if result.skipped else ""))
        return result

    def run_single(self, state: RuntimeDecisionState, view: BattleView) -> SingleStepResult:
        """First resolvable step only. The caller submits the id."""
        state.reconcile(view.legal_ids)
        claims = _Claims()

        chained = self._ready_chain(state, view, claims, drop_unsubmitted=False)
        if chained is not None:
            chain, action = chained
            state.chains.remove(chain)
            step = PlanStep.for_action(action.id, note='chain')
            step.params['unit_id'] = chain.attacker_unit_id
            state.steps.append(step)
            state.mark_queued(step, action.id)
            return SingleStepResult(action.id, 'attack_after_move', step)

        pending = state.pending_steps()
        for step in pending:
            if state.chains and self._is_end_turn(step, view):
                continue
            action = self._resolve_step(step, state, view, claims)
            if action is not None:
                state.mark_queued(step, action.id)
                return SingleStepResult(action.id, f'step:{step.kind}', step)
            logger.debug(f"Step {step.kind} {step.params} unresolvable, trying next")

        if state.chains:
            moving = {s.params.get('unit_id') for s in state.steps if s.status == StepStatus.QUEUED}
            if any(c.attacker_unit_id in moving for c in state.chains):
                return SingleStepResult(None, 'awaiting_move_confirmation')
            logger.debug(f"Dropping {len(state.chains)} chains whose move never went out")
            state.chains.clear()
            for step in pending:
                if self._is_end_turn(step, view):
                    action = self._resolve_step(step, state, view, claims)
                    if action is not None:
                        state.mark_queued(step, action.id)
                        return SingleStepResult(action.id, f'step:{step.kind}', step)

        if pending or not state.steps:
            action = self.safe_action(view)
            if action is not None:
                step = PlanStep.for_action(action.id, note='safe_fallback')
                state.steps.append(step)
                state.mark_queued(step, action.id)
                logger.warning(f"🛟 No step resolved, safe fallback action {action.id} ({action.kind.value})")
                return SingleStepResult(action.id, 'safe_fallback', step)
        return SingleStepResult(None, 'plan_complete' if not pending else 'nothing_resolvable')

    def safe_action(self, view: BattleView) -> Optional[Action]:
        """First legal action by the fixed fallback priority."""
        attacks = view.attacks
        if attacks:
            return attacks[0]
        for move in view.moves:
            if view.enables_attack(move):
                return move
        if view.plays:
            return view.plays[0]
        if view.hero_power is not None:
            return view.hero_power
        if view.moves:
            return view.moves[0]
        return view.end_turn

    # =========================================================================
    # Internals
    # =========================================================================

    def _try_step(self, step: PlanStep, state: RuntimeDecisionState, view: BattleView,
                  claims: _Claims, result: BatchResult):
        action = self._resolve_step(step, state, view, claims)
        if action is None:
            note = f"{step.kind} {step.params}"
            result.skipped.append(note)
            logger.debug(f"Skipping unresolvable step: {note}")
            return
        if self.submit(action.id):
            claims.claim(action)
            state.mark_queued(step, action.id)
            result.submitted.append(action.id)

    def submit(self, action_id: int) -> bool:
        """Write one id to the client. False (logged) if the write failed."""
        if self.send is None:
            return True
        try:
            self.send(action_id)
            return True
        except Exception as e:
            logger.error(f"Failed to submit action {action_id}: {e}", exc_info=True)
            return False

    def _fallback(self, state: RuntimeDecisionState, view: BattleView, result: BatchResult):
        action = self.safe_action(view)
        if action is None:
            logger.warning("No legal action available for safe fallback")
            return
        if not self.submit(action.id):
            return
        step = PlanStep.for_action(action.id, note='safe_fallback')
        state.steps.append(step)
        state.mark_queued(step, action.id)
        result.submitted.append(action.id)
        result.fallback_id = action.id
        logger.warning(f"🛟 Nothing resolved, safe fallback action {action.id} ({action.kind.value})")

    def _is_end_turn(self, step: PlanStep, view: BattleView) -> bool:
        if step.kind == 'end_turn':
            return True
        if step.kind == 'action':
            action = view.action(step.params.get('action_id'))
            return action is not None and action.kind == ActionKind.END_TURN
        return False

    # --- chains --------------------------------------------------------

    def _ready_chain(self, state: RuntimeDecisionState, view: BattleView, claims: _Claims,
                     drop_unsubmitted: bool = True):
        """
        First chain whose move has landed and whose attacker can now attack.

        Chains whose move has landed without opening an attack are dropped.
        """
        for chain in list(state.chains):
            statuses = {s.status for s in state.steps if s.params.get('unit_id') == chain.attacker_unit_id}
            if StepStatus.QUEUED in statuses:
                continue
            if StepStatus.PENDING in statuses:
                if not drop_unsubmitted:
                    continue
                logger.debug(f"Dropping chain for unit {chain.attacker_unit_id}: move never submitted")
                state.chains.remove(chain)
                continue
            attacks = [a for a in view.attacks
                       if a.attacker_unit_id == chain.attacker_unit_id and claims.free(a)]
            if attacks:
                preferred = next((a for a in attacks
                                  if a.target_unit_id == chain.preferred_target_unit_id), None)
                if preferred is None and chain.preferred_target_unit_id is None:
                    preferred = next((a for a in attacks if a.is_direct_strike), None)
                return chain, preferred or attacks[0]
            logger.debug(f"Dropping chain for unit {chain.attacker_unit_id}: no attack after move")
            state.chains.remove(chain)
        return None

    def _follow_chains(self, state: RuntimeDecisionState, view: BattleView,
                       claims: _Claims, result: BatchResult):
        while True:
            ready = self._ready_chain(state, view, claims)
            if ready is None:
                return
            chain, action = ready
            state.chains.remove(chain)
            if not self.submit(action.id):
                continue
            step = PlanStep.for_action(action.id, note='chain')
            step.params['unit_id'] = chain.attacker_unit_id
            state.steps.append(step)
            state.mark_queued(step, action.id)
            claims.claim(action)
            result.submitted.append(action.id)
            logger.info(f"🔗 Chained attack {action.id} for unit {chain.attacker_unit_id}")

    # --- per-step resolution -------------------------------------------

    def _resolve_step(self, step: PlanStep, state: RuntimeDecisionState,
                      view: BattleView, claims: _Claims) -> Optional[Action]:
        resolver = {
            'action': self._resolve_action,
            'play': self._resolve_play,
            'play_card': self._resolve_play_card,
            'move': self._resolve_move,
            'attack': self._resolve_attack,
            'move_then_attack': self._resolve_move_then_attack,
            'hero_power': lambda s, st, v, c: self._free(v.hero_power, c),
            'end_turn': lambda s, st, v, c: self._free(v.end_turn, c),
        }.get(step.kind)
        if resolver is None:
            logger.warning(f"Unknown step kind '{step.kind}'")
            return None
        return resolver(step, state, view, claims)

    @staticmethod
    def _free(action: Optional[Action], claims: _Claims) -> Optional[Action]:
        return action if action is not None and action.id not in claims.ids else None

    def _resolve_action(self, step, state, view, claims) -> Optional[Action]:
        action = view.action(step.params.get('action_id'))
        if action is None or action.id in claims.ids:
            return None
        if action.kind == ActionKind.PLAY_CARD and not claims.free(action):
            return self._nearest_play(view, action.card_id, action.cell_index, claims)
        if action.kind == ActionKind.MOVE_UNIT and not claims.free(action):
            return None
        return action

    def _nearest_play(self, view: BattleView, card_id: Optional[int], cell: Optional[int],
                      claims: _Claims) -> Optional[Action]:
        """Same card, the closest unclaimed legal cell."""
        options = [a for a in view.plays if a.card_id == card_id and claims.free(a)]
        if not options:
            return None
        if cell is None or cell < 0:
            return options[0]
        substitute = min(options, key=lambda a: view.zones.cell_distance(a.cell_index, cell)
                         if a.cell_index is not None else 1 << 20)
        if substitute.cell_index != cell:
            logger.debug(f"Cell {cell} taken, placing card {card_id} at {substitute.cell_index}")
        return substitute

    def _resolve_play(self, step, state, view, claims) -> Optional[Action]:
        params = step.params
        card_id = params.get('card_id')
        if card_id is None:
            match = self.names.resolve_card(params.get('card') or params.get('name'),
                                            view.snapshot.me.hand, view.snapshot.me.mana)
            if not match.matched:
                return None
            card_id = match.item.card_id

        hint = params.get('hint') or params.get('zone')
        cell = params.get('cell_index')
        if cell is None and isinstance(hint, int):
            cell = hint
        if cell is not None:
            return self._nearest_play(view, card_id, cell, claims)

        options = [a for a in view.plays if a.card_id == card_id and claims.free(a)]
        if not options:
            return None
        depth, lane = parse_zone(hint) or ('mid', 'center')
        return max(options, key=lambda a: (view.zones.matches(a.cell_index, depth, lane),
                                           view.zones.zone_score(a.cell_index, depth, lane)))

    def _resolve_play_card(self, step, state, view, claims) -> Optional[Action]:
        params = step.params
        to = params.get('to') if isinstance(params.get('to'), dict) else {}
        cell = to.get('cell_index', params.get('cell_index'))
        return self._nearest_play(view, params.get('card_id'), cell, claims)

    def _resolve_unit_id(self, params: Dict[str, Any], view: BattleView, *keys: str) -> Optional[int]:
        for key in keys:
            value = params.get(key)
            if isinstance(value, int):
                return value
            if value:
                match = self.names.resolve_unit(value, view.snapshot.self_units, view.labels)
                if match.matched:
                    return match.item.unit_id
        return None

    def _resolve_move(self, step, state, view, claims) -> Optional[Action]:
        params = step.params
        unit_id = self._resolve_unit_id(params, view, 'unit_id', 'unit')
        if unit_id is None:
            return None
        options = [a for a in view.moves if a.unit_id == unit_id and claims.free(a)]
        if not options:
            return None
        to_cell = params.get('to_cell_index')
        if to_cell is not None:
            return next((a for a in options if a.to_cell_index == to_cell), None)
        depth, lane = parse_zone(params.get('hint')) or (None, None)
        return max(options, key=lambda a: (view.enables_attack(a),
                                           view.zones.zone_score(a.to_cell_index, depth, lane)))

    def _resolve_attack(self, step, state, view, claims) -> Optional[Action]:
        params = step.params
        attacker_id = self._resolve_unit_id(params, view, 'attacker_unit_id', 'attacker', 'unit')
        if attacker_id is None:
            return None
        attacks = [a for a in view.attacks if a.attacker_unit_id == attacker_id and a.id not in claims.ids]
        if not attacks:
            return None

        target = params.get('target_unit_id', params.get('target'))
        if target is None:
            return attacks[0]
        if is_hero_marker(target):
            return next((a for a in attacks if a.is_direct_strike), None)
        if isinstance(target, int):
            return next((a for a in attacks if a.target_unit_id == target), None)
        match = self.names.resolve_unit(target, view.snapshot.enemy_units, view.labels)
        if not match.matched:
            return None
        return next((a for a in attacks if a.target_unit_id == match.item.unit_id), None)

    def _resolve_move_then_attack(self, step, state, view, claims) -> Optional[Action]:
        params = step.params
        unit_id = self._resolve_unit_id(params, view, 'unit_id', 'unit')
        target_id = params.get('target_unit_id')
        if unit_id is None:
            return None
        for row in view.preview_rows(unit_id):
            if target_id is not None and target_id not in row.targets:
                continue
            move = next((a for a in view.moves
                         if a.unit_id == unit_id and a.to_cell_index == row.to_cell_index and claims.free(a)),
                        None)
            if move is not None:
                step.params['unit_id'] = unit_id
                state.chains.append(ChainHint(unit_id, target_id))
                return move
        return None
