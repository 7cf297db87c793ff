"""
Runtime Decision State

Caller-owned, per-session state threaded through the pipeline. It carries
the current turn's plan steps and chain hints across repeated polls, so the
same step is never submitted twice, and it notices when the game state has
moved on far enough that the plan is stale.

Drift thresholds (any one invalidates the plan):
- unit-count change >= 3 (both sides combined)
- hero HP change >= 10 (larger of the two heroes)
- hand-size change >= 4
- turn number jump >= 3
- digest changed and (unit-count change >= 1 or hero HP change >= 5)
A change of turn number always resets the plan.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .intent_resolver import ChainHint
from .models import Snapshot

logger = logging.getLogger(__name__)

UNIT_DRIFT = 3
HP_DRIFT = 10
HAND_DRIFT = 4
TURN_DRIFT = 3
# Smaller thresholds that apply once the digest shows the board changed
DIGEST_UNIT_DRIFT = 1
DIGEST_HP_DRIFT = 5


class StepStatus(Enum):
    PENDING = "pending"
    QUEUED = "queued"
    EXECUTED = "executed"


@dataclass
class PlanStep:
    """
    One step of a plan.

    ``kind`` is ``action`` for an already-resolved id (``params['action_id']``),
    or one of the flat step types: play, play_card, move, attack,
    move_then_attack, hero_power, end_turn.
    """
    kind: str
    params: Dict[str, Any] = field(default_factory=dict)
    status: StepStatus = StepStatus.PENDING
    pending_action_id: Optional[int] = None
    note: str = ""

    @classmethod
    def for_action(cls, action_id: int, note: str = "") -> 'PlanStep':
        return cls(kind='action', params={'action_id': action_id}, note=note)


@dataclass
class StateSummary:
    """The handful of numbers drift detection compares"""
    turn: int
    my_units: int
    enemy_units: int
    my_hp: int
    enemy_hp: int
    my_hand: int

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> 'StateSummary':
        return cls(
            turn=snapshot.turn,
            my_units=len(snapshot.self_units),
            enemy_units=len(snapshot.enemy_units),
            my_hp=snapshot.me.hero_hp or 0,
            enemy_hp=snapshot.enemy.hero_hp or 0,
            my_hand=snapshot.me.hand_size,
        )

    def drift_from(self, other: 'StateSummary', digest_changed: bool = False) -> List[str]:
        """
        Reasons this summary has drifted materially from ``other``.

        Args:
            other: Baseline summary taken when the plan was loaded
            digest_changed: Whether the snapshot digest differs from the baseline's
        """
        reasons = []
        units = abs(self.my_units - other.my_units) + abs(self.enemy_units - other.enemy_units)
        hp = max(abs(self.my_hp - other.my_hp), abs(self.enemy_hp - other.enemy_hp))
        hand = abs(self.my_hand - other.my_hand)
        turns = abs(self.turn - other.turn)
        if units >= UNIT_DRIFT:
            reasons.append(f"units changed by {units}")
        if hp >= HP_DRIFT:
            reasons.append(f"a hero's hp changed by {hp}")
        if hand >= HAND_DRIFT:
            reasons.append(f"hand changed by {hand}")
        if turns >= TURN_DRIFT:
            reasons.append(f"turn jumped by {turns}")
        if not reasons and digest_changed and (units >= DIGEST_UNIT_DRIFT or hp >= DIGEST_HP_DRIFT):
            reasons.append(f"board changed (units {units}, hero hp {hp})")
        return reasons


def snapshot_digest(snapshot: Snapshot) -> str:
    """Stable sha1 over the fields that matter for plan validity."""
    picked = {
        'turn': snapshot.turn,
        'me': [snapshot.me.hero_hp, snapshot.me.mana, sorted(c.card_id for c in snapshot.me.hand)],
        'enemy': [snapshot.enemy.hero_hp, snapshot.enemy.hand_size],
        'units': sorted(
            [u.unit_id, u.owner, u.hp, u.cell_index]
            for u in snapshot.self_units + snapshot.enemy_units
        ),
    }
    encoded = json.dumps(picked, sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.sha1(encoded.encode('utf-8')).hexdigest()


@dataclass
class RuntimeDecisionState:
    """
    Per-session mutable decision state.

    Construct one per game session and pass it to every pipeline call.
    """
    turn: Optional[int] = None
    steps: List[PlanStep] = field(default_factory=list)
    chains: List[ChainHint] = field(default_factory=list)
    cursor: int = 0
    revision: int = 0
    digest: Optional[str] = None
    baseline: Optional[StateSummary] = None
    baseline_digest: Optional[str] = None
    outcomes: List[Dict[str, Any]] = field(default_factory=list)
    last_record_id: Optional[str] = None
    notes: str = ""  # running memory handed back to the intent source

    # --- lifecycle -----------------------------------------------------

    def observe(self, snapshot: Snapshot) -> Optional[str]:
        """
        Check a fresh snapshot against the current plan.

        Returns:
            None if the plan (if any) is still valid, otherwise the reason it
            was discarded.
        """
        reason = None
        digest = snapshot_digest(snapshot)
        if self.turn is not None and snapshot.turn != self.turn:
            reason = f"turn advanced {self.turn} -> {snapshot.turn}"
        elif self.baseline is not None:
            changed = self.baseline_digest is not None and digest != self.baseline_digest
            drift = StateSummary.from_snapshot(snapshot).drift_from(self.baseline, digest_changed=changed)
            if drift:
                reason = "drift: " + ", ".join(drift)

        if reason is not None and (self.steps or self.chains):
            logger.info(f"🔄 Discarding plan (rev {self.revision}): {reason}")
        if reason is not None:
            self.clear_plan()
        self.turn = snapshot.turn
        self.digest = digest
        return reason

    def load_plan(self, steps: Iterable[PlanStep], chains: Iterable[ChainHint], snapshot: Snapshot):
        self.steps = list(steps)
        self.chains = list(chains)
        self.cursor = 0
        self.revision += 1
        self.turn = snapshot.turn
        self.baseline = StateSummary.from_snapshot(snapshot)
        self.digest = snapshot_digest(snapshot)
        self.baseline_digest = self.digest
        logger.debug(f"Loaded plan rev {self.revision}: {len(self.steps)} steps, {len(self.chains)} chains")

    def clear_plan(self):
        self.steps = []
        self.chains = []
        self.cursor = 0
        self.baseline = None
        self.baseline_digest = None
        self.revision += 1

    def reset(self):
        """Session boundary: forget everything."""
        self.clear_plan()
        self.turn = None
        self.digest = None
        self.outcomes = []
        self.last_record_id = None
        self.notes = ""

    # --- step bookkeeping ----------------------------------------------

    @property
    def has_plan(self) -> bool:
        return bool(self.steps) or bool(self.chains)

    def pending_steps(self) -> List[PlanStep]:
        return [s for s in self.steps if s.status == StepStatus.PENDING]

    def mark_queued(self, step: PlanStep, action_id: int):
        step.status = StepStatus.QUEUED
        step.pending_action_id = action_id
        self._advance_cursor()

    def reconcile(self, legal_ids: Iterable[int]) -> int:
        """
        Mark queued steps executed once their id has left the legal pool.

        Returns:
            Number of steps confirmed
        """
        legal = set(legal_ids)
        confirmed = 0
        for step in self.steps:
            if step.status == StepStatus.QUEUED and step.pending_action_id not in legal:
                step.status = StepStatus.EXECUTED
                confirmed += 1
        if confirmed:
            logger.debug(f"Confirmed {confirmed} queued steps")
        return confirmed

    def record_outcome(self, action_id: Optional[int], success: bool, reason: str = ""):
        self.outcomes.append({'turn': self.turn, 'action_id': action_id, 'success': success, 'reason': reason})

    def _advance_cursor(self):
        while self.cursor < len(self.steps) and self.steps[self.cursor].status != StepStatus.PENDING:
            self.cursor += 1
