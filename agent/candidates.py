"""
Candidate Generator

For each intent, pre-filters and scores the small set of legal actions that
could satisfy it. A verification stage (a second model pass, or a human in
the loop) then picks candidate ids instead of free text, and
``plan_from_selection`` turns that pick back into a ResolvedPlan under the
same pool rules the resolver uses.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .intent_resolver import ActionPool, ChainHint, IntentResolver, ResolvedPlan
from .intents import Intent, IntentParseError, Verb
from .models import ActionKind
from .name_resolver import is_hero_marker
from .perception import BattleView
from .strategy_config import get_config
from .topology import parse_zone

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    candidate_id: str
    intent_index: int
    summary: str
    action_ids: List[int] = field(default_factory=list)
    score: float = 0.0
    signal: Dict[str, Any] = field(default_factory=dict)
    chain: Optional[ChainHint] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.candidate_id,
            'intent_index': self.intent_index,
            'summary': self.summary,
            'action_ids': list(self.action_ids),
            'score': self.score,
            'signal': dict(self.signal),
            'chain': self.chain.to_dict() if self.chain else None,
        }


def describe_cell_region(view: BattleView, cell: Optional[int]) -> str:
    """Human-readable cell, e.g. ``back_left (r2c0)``."""
    zone = view.zone_of(cell)
    row, col = view.zones.row(cell), view.zones.col(cell)
    if row is None:
        return f"cell {cell}"
    return f"{zone} (r{row}c{col})"


class CandidateGenerator:
    """Builds per-intent candidate lists."""

    def __init__(self, resolver: Optional[IntentResolver] = None,
                 per_intent_limit: Optional[int] = None):
        self.resolver = resolver or IntentResolver()
        self.per_intent_limit = per_intent_limit or get_config().get('candidates', 'per_intent_limit', 4)

    def generate(self, intents: Sequence[Any], view: BattleView) -> List[Candidate]:
        candidates: List[Candidate] = []
        for index, raw in enumerate(intents or []):
            try:
                intent = Intent.from_dict(raw)
            except IntentParseError as e:
                logger.debug(f"No candidates for intent #{index}: {e}")
                continue

            if intent.verb.is_attack:
                found = self._attack_candidates(index, intent, view)
            elif intent.verb.is_positional:
                found = self._move_candidates(index, intent, view)
            elif intent.verb == Verb.DEPLOY:
                found = self._deploy_candidates(index, intent, view)
            elif intent.verb == Verb.END_TURN and view.end_turn is not None:
                found = [Candidate(f"i{index}_end", index, "end turn", [view.end_turn.id], 0.0,
                                   {'kind': 'end_turn'})]
            else:
                found = []

            if not found:
                found = [Candidate(f"i{index}_hold", index, "hold (no legal option)", [], 0.0,
                                   {'kind': 'hold', 'verb': intent.verb.value})]
            candidates.extend(found)

        logger.debug(f"Generated {len(candidates)} candidates for {len(intents or [])} intents")
        return candidates

    # --- per verb ------------------------------------------------------

    def _attack_candidates(self, index: int, intent: Intent, view: BattleView) -> List[Candidate]:
        unit = self.resolver.find_own_unit(view, intent.subject)
        if unit is None:
            return []
        hero_target = bool(intent.target) and is_hero_marker(intent.target)
        target = None if hero_target else self.resolver.find_enemy_unit(view, intent.target)

        def wanted(target_id: Optional[int]) -> bool:
            return target_id is None if hero_target else (target is not None and target_id == target.unit_id)

        label = view.label(unit.unit_id)
        scored = []
        for attack in view.attacks:
            if attack.attacker_unit_id != unit.unit_id:
                continue
            score = self.resolver.target_value(view, unit, attack.target_unit_id) + (80 if wanted(attack.target_unit_id) else 0)
            scored.append(('atk', score, attack, None, f"{label} attacks {view.label(attack.target_unit_id)}"))

        for row in view.preview_rows(unit.unit_id):
            move = next((m for m in view.moves
                         if m.unit_id == unit.unit_id and m.to_cell_index == row.to_cell_index), None)
            if move is None:
                continue
            for preview_target in row.targets:
                score = 10 + (80 if wanted(preview_target) else 0)
                chain = ChainHint(unit.unit_id, preview_target)
                summary = (f"move {label} -> {describe_cell_region(view, row.to_cell_index)} "
                           f"then attack {view.label(preview_target)}")
                scored.append(('mv', score, move, chain, summary))

        scored.sort(key=lambda s: -s[1])
        result = []
        seen = set()
        for tag, score, action, chain, summary in scored:
            if action.id in seen:
                continue
            seen.add(action.id)
            result.append(Candidate(f"i{index}_{tag}{len(result)}", index, summary, [action.id],
                                    score, {'kind': 'attack' if tag == 'atk' else 'move_then_attack'}, chain))
            if len(result) >= self.per_intent_limit:
                break
        return result

    def _move_candidates(self, index: int, intent: Intent, view: BattleView) -> List[Candidate]:
        unit = self.resolver.find_own_unit(view, intent.subject)
        if unit is None:
            return []
        depth, lane = self.resolver.target_zone(intent, view)
        moves = [m for m in view.moves if m.unit_id == unit.unit_id]
        moves.sort(key=lambda m: -view.zones.zone_score(m.to_cell_index, depth, lane))
        label = view.label(unit.unit_id)
        return [
            Candidate(f"i{index}_pos{k}", index,
                      f"move {label} -> {describe_cell_region(view, m.to_cell_index)}",
                      [m.id], view.zones.zone_score(m.to_cell_index, depth, lane), {'kind': 'move'})
            for k, m in enumerate(moves[:self.per_intent_limit])
        ]

    def _deploy_candidates(self, index: int, intent: Intent, view: BattleView) -> List[Candidate]:
        card_name = intent.hand_card_name
        if card_name is None:
            return []
        match = self.resolver.names.resolve_card(card_name, view.snapshot.me.hand, view.snapshot.me.mana)
        if not match.matched:
            return []
        card = match.item
        depth, lane = parse_zone(intent.target) or (None, None)
        plays = [p for p in view.plays if p.card_id == card.card_id]
        plays.sort(key=lambda p: (not view.zones.matches(p.cell_index, depth, lane),
                                  -view.zones.zone_score(p.cell_index, depth, lane)))
        return [
            Candidate(f"i{index}_dep{k}", index,
                      f"play {card.name} at {describe_cell_region(view, p.cell_index)}",
                      [p.id], view.zones.zone_score(p.cell_index, depth, lane),
                      {'kind': 'play', 'mana_cost': card.mana_cost})
            for k, p in enumerate(plays[:self.per_intent_limit])
        ]

    # --- selection -----------------------------------------------------

    def plan_from_selection(self, candidates: Sequence[Candidate], chosen_ids: Sequence[str],
                            view: BattleView) -> ResolvedPlan:
        """
        Build a plan from the candidate ids a verification stage picked.

        Unknown ids, ids no longer in the pool and over-cap picks are dropped
        with an explain line; the pool rules match ``IntentResolver``.
        """
        plan = ResolvedPlan()
        by_id = {c.candidate_id: c for c in candidates}
        pool = ActionPool(view.actions)
        mana = view.snapshot.me.mana

        for candidate_id in chosen_ids or []:
            candidate = by_id.get(candidate_id)
            if candidate is None:
                plan.explain.append(f"unknown candidate '{candidate_id}'")
                continue
            for action_id in candidate.action_ids:
                action = view.action(action_id)
                if action is None or not _in_pool(pool, action):
                    plan.explain.append(f"{candidate_id}: action {action_id} no longer available")
                    continue
                if len(plan.action_ids) >= self.resolver.max_ids:
                    plan.explain.append(f"cap of {self.resolver.max_ids} ids reached")
                    plan.capped = True
                    break
                if action.kind == ActionKind.PLAY_CARD:
                    card = view.snapshot.hand_card(action.card_id)
                    cost = card.mana_cost if card else None
                    if mana is not None and cost is not None and cost > mana:
                        plan.explain.append(f"{candidate_id}: not enough mana for {card.name}")
                        continue
                    if mana is not None and cost is not None:
                        mana -= cost
                    pool.retire_play(action.card_id, action.cell_index)
                plan.action_ids.append(action_id)
                pool.discard(action_id)
                if action.kind == ActionKind.UNIT_ATTACK:
                    pool.retire_unit(action.attacker_unit_id)
                elif action.kind == ActionKind.MOVE_UNIT:
                    pool.retire_unit(action.unit_id, attacks=False)
                plan.explain.append(f"{candidate_id}: commit {action_id} ({candidate.summary})")
            if candidate.chain is not None and candidate.action_ids and candidate.action_ids[-1] in plan.action_ids:
                plan.chains.append(candidate.chain)

        plan.remaining_mana = mana
        plan.ok = bool(plan.action_ids)
        return plan


def _in_pool(pool: ActionPool, action) -> bool:
    if action.kind == ActionKind.UNIT_ATTACK:
        return action in pool.attacks
    if action.kind == ActionKind.MOVE_UNIT:
        return action in pool.moves
    if action.kind == ActionKind.PLAY_CARD:
        return action in pool.plays
    if action.kind == ActionKind.END_TURN:
        return pool.end_turn is not None and pool.end_turn.id == action.id
    return pool.hero_power is not None and pool.hero_power.id == action.id
