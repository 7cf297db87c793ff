"""
Decision Pipeline

One call per snapshot:

    snapshot -> Perception -> fast path -> intent source (bounded wait)
             -> IntentResolver -> ExecutionEngine -> game client

The caller owns a RuntimeDecisionState per session and passes it in every
time. A plan computed earlier in the turn is continued (never recomputed)
until it completes, the turn changes, or the snapshot drifts.

CRITICAL DESIGN PRINCIPLE:
Every decision on our turn must submit something. A weak action is better
than a stalled turn, so every failure path ends at the safe fallback.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from brain.interface import IntentRequest, IntentSource

from .decision_logger import log_decision, rotate_decision_log
from .executor import ExecutionEngine
from .fast_path import FastPathEngine, FastPathOptions
from .intent_resolver import IntentResolver, ResolvedPlan
from .models import Action, ActionKind, Snapshot, parse_actions
from .name_resolver import FuzzyResolver
from .perception import BattleView, Perception
from .runtime_state import PlanStep, RuntimeDecisionState, StepStatus

logger = logging.getLogger(__name__)


@dataclass
class TurnDecision:
    """
    What the pipeline did for one snapshot.

    method is one of: fast, resolved, continued, fallback, idle
    """
    method: str
    action_ids: List[int] = field(default_factory=list)
    reason: str = ""
    confidence: float = 0.0
    plan: Optional[ResolvedPlan] = None
    record_id: Optional[str] = None
    latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'action_ids': list(self.action_ids),
            'reason': self.reason,
            'confidence': self.confidence,
            'plan': self.plan.to_dict() if self.plan else None,
            'record_id': self.record_id,
            'latency_ms': round(self.latency_ms, 1),
        }


class DecisionPipeline:
    """
    Per-turn orchestration.

    Args:
        intent_source: Strategy source (rule engine or model); None means
            fast path + safe fallback only
        send: Writes one action id to the game client (batch mode)
        repository: Optional DecisionRepository for decision records
        timeout: Seconds to wait for the intent source
        single_step: Return one id per call instead of submitting a batch
        max_ids / strict / min_confidence: resolver settings
        aggressiveness / safety_first: fast-path profile
        log_decisions: Write entries to the dedicated decision log
    """

    def __init__(self, intent_source: Optional[IntentSource] = None,
                 send: Optional[Callable[[int], None]] = None,
                 repository=None,
                 timeout: float = 8.0,
                 single_step: bool = False,
                 max_ids: Optional[int] = None,
                 strict: Optional[bool] = None,
                 min_confidence: Optional[float] = None,
                 aggressiveness: float = 0.5,
                 safety_first: bool = False,
                 log_decisions: bool = True):
        self.intent_source = intent_source
        self.repository = repository
        self.timeout = timeout
        self.single_step = single_step
        self.log_decisions = log_decisions

        names = FuzzyResolver(min_confidence=min_confidence) if min_confidence is not None else None
        self.perception = Perception()
        self.fast_path = FastPathEngine(FastPathOptions(aggressiveness=aggressiveness,
                                                        safety_first=safety_first))
        self.resolver = IntentResolver(names=names, max_ids=max_ids, strict=strict)
        self.executor = ExecutionEngine(send=send, names=self.resolver.names)

    # =========================================================================
    # Entry points
    # =========================================================================

    def decide(self, raw_snapshot: Union[Snapshot, Dict[str, Any]],
               raw_actions: Sequence[Union[Action, Dict[str, Any]]],
               state: RuntimeDecisionState,
               feedback: Optional[Dict[str, Any]] = None) -> TurnDecision:
        """
        Decide (and in batch mode submit) for one snapshot.

        GUARANTEE: never raises. Unexpected errors end at the safe fallback.
        """
        start = time.monotonic()
        actions = parse_actions(raw_actions)
        snapshot = None
        try:
            snapshot = raw_snapshot if isinstance(raw_snapshot, Snapshot) else Snapshot.from_dict(raw_snapshot)
            return self._decide(snapshot, actions, state, feedback, start)
        except Exception as e:
            logger.error(f"❌ Decision pipeline failed: {e}", exc_info=True)
            return self._emergency(snapshot, actions, state, start)

    def report_outcome(self, state: RuntimeDecisionState, success: bool,
                       executed_action_id: Optional[int] = None, failure_reason: str = ""):
        """The game client told us how the last decision went."""
        state.record_outcome(executed_action_id, success, failure_reason)
        if self.repository is not None and state.last_record_id:
            self.repository.attach_outcome(state.last_record_id, success,
                                           executed_action_id, failure_reason)
        if not success:
            logger.info(f"📉 Action {executed_action_id} failed: {failure_reason}")

    def end_session(self, state: RuntimeDecisionState, won: Optional[bool] = None,
                    session_label: Optional[str] = None):
        """Session boundary: rotate the decision log and forget plan state."""
        if self.intent_source is not None:
            self.intent_source.on_session_end(won)
        if self.log_decisions:
            rotate_decision_log(session_label, won)
        logger.info(f"🏁 Session ended (won={won}), fast path: {self.fast_path.stats.as_dict()}")
        state.reset()

    # =========================================================================
    # Stages
    # =========================================================================

    def _decide(self, snapshot: Snapshot, actions: List[Action], state: RuntimeDecisionState,
                feedback: Optional[Dict[str, Any]], start: float) -> TurnDecision:
        if not snapshot.is_my_turn:
            return TurnDecision('idle', reason='not_my_turn')

        state.observe(snapshot)
        view = self.perception.observe(snapshot, actions)
        state.reconcile(view.legal_ids)

        if state.has_plan and not self._plan_finished(state):
            return self._continue(view, state, start)
        if state.has_plan:
            logger.debug(f"Plan rev {state.revision} complete, planning again")
            state.clear_plan()

        fast = self.fast_path.decide(view)
        if fast.hit:
            state.load_plan([PlanStep.for_action(fast.action_id, note=fast.reason)], [], snapshot)
            ids, fallback = self._execute(state, view)
            return self._finish(view, state, 'fallback' if fallback else 'fast', ids,
                                fast.reason, fast.confidence, None, start)
        if not fast.should_continue:
            return TurnDecision('idle', reason=fast.reason)

        intents = self._ask_source(view, state, feedback)
        if intents is None:
            state.load_plan([], [], snapshot)
            ids, _ = self._execute(state, view)
            return self._finish(view, state, 'fallback', ids, 'intent_source_unavailable', 0.0, None, start)

        plan = self.resolver.resolve(intents, view)
        if not plan.ok:
            logger.warning(f"⚠️ Plan not ok ({len(plan.errors)} errors), relying on fallback")
        state.load_plan(self.executor.steps_from_plan(plan, view), plan.chains, snapshot)
        ids, fallback = self._execute(state, view)
        return self._finish(view, state, 'fallback' if fallback else 'resolved', ids,
                            'intents' if plan.ok else 'plan_not_ok', 0.0, plan, start)

    def _continue(self, view: BattleView, state: RuntimeDecisionState, start: float) -> TurnDecision:
        ids, fallback = self._execute(state, view)
        if not ids:
            return TurnDecision('continued', reason='awaiting_confirmation',
                                latency_ms=(time.monotonic() - start) * 1000)
        return self._finish(view, state, 'fallback' if fallback else 'continued', ids,
                            f'plan_rev_{state.revision}', 0.0, None, start)

    def _execute(self, state: RuntimeDecisionState, view: BattleView):
        """Returns (ids, used_fallback)."""
        if self.single_step:
            result = self.executor.run_single(state, view)
            ids = [result.action_id] if result.action_id is not None else []
            return ids, result.reason == 'safe_fallback'
        result = self.executor.run_batch(state, view)
        return list(result.submitted), result.used_fallback

    @staticmethod
    def _plan_finished(state: RuntimeDecisionState) -> bool:
        return not state.chains and all(s.status == StepStatus.EXECUTED for s in state.steps)

    def _ask_source(self, view: BattleView, state: RuntimeDecisionState,
                    feedback: Optional[Dict[str, Any]]) -> Optional[List[Dict[str, Any]]]:
        """Call the intent source under a hard timeout. None means 'use fallback'."""
        if self.intent_source is None:
            return None
        if feedback is None and state.outcomes:
            feedback = state.outcomes[-1]
        request = IntentRequest(report=view.report.to_dict(), turn=view.snapshot.turn,
                                memory=state.notes, feedback=feedback)
        source_name = self.intent_source.name

        # A hung source must not hold the turn; the worker is abandoned on timeout
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix='intent-source')
        try:
            future = pool.submit(self.intent_source.propose, request)
            response = future.result(timeout=self.timeout)
        except FutureTimeout:
            logger.warning(f"⏱️ Intent source '{source_name}' timed out after {self.timeout}s")
            return None
        except Exception as e:
            logger.warning(f"⚠️ Intent source '{source_name}' failed: {e}")
            return None
        finally:
            pool.shutdown(wait=False)

        if response is None or not response.intents:
            logger.warning(f"⚠️ Intent source '{source_name}' returned no intents")
            return None
        if response.notes:
            state.notes = response.notes
        logger.info(f"🧠 {source_name}: {len(response.intents)} intents")
        return response.intents

    def _emergency(self, snapshot: Optional[Snapshot], actions: List[Action],
                   state: RuntimeDecisionState, start: float) -> TurnDecision:
        """Last line of defense: the first legal action by fallback priority."""
        try:
            snapshot = snapshot or Snapshot.from_dict({})
            view = self.perception.observe(snapshot, actions)
            action = self.executor.safe_action(view)
        except Exception as e:
            logger.error(f"❌ Emergency fallback failed: {e}", exc_info=True)
            action = next((a for a in actions if a.kind == ActionKind.END_TURN), None)
        if action is None:
            return TurnDecision('idle', reason='no_legal_action')

        step = PlanStep.for_action(action.id, note='emergency')
        state.steps.append(step)
        if not self.single_step and not self.executor.submit(action.id):
            return TurnDecision('fallback', reason='emergency_submit_failed')
        state.mark_queued(step, action.id)
        logger.warning(f"🛟 Emergency fallback action {action.id} ({action.kind.value})")
        return TurnDecision('fallback', [action.id], 'emergency_fallback',
                            latency_ms=(time.monotonic() - start) * 1000)

    # =========================================================================
    # Recording
    # =========================================================================

    def _finish(self, view: BattleView, state: RuntimeDecisionState, method: str,
                action_ids: List[int], reason: str, confidence: float,
                plan: Optional[ResolvedPlan], start: float) -> TurnDecision:
        latency_ms = (time.monotonic() - start) * 1000
        decision = TurnDecision(method, list(action_ids), reason, confidence, plan,
                                latency_ms=latency_ms)
        explain = plan.explain if plan else None
        errors = [f"#{e.index} {e.code.value}: {e.message}" for e in plan.errors] if plan else None

        logger.info(f"🎯 Turn {view.snapshot.turn}: {method} -> {decision.action_ids} ({reason}, "
                    f"{latency_ms:.0f}ms)")
        if self.log_decisions:
            log_decision(view.snapshot.turn, method, decision.action_ids, reason, confidence,
                         explain, errors, latency_ms)
        if self.repository is not None:
            decision.record_id = self.repository.record_decision(
                view.snapshot, method, decision.action_ids, reason=reason, confidence=confidence,
                latency_ms=latency_ms, explain=explain, errors=errors)
            state.last_record_id = decision.record_id
        return decision
