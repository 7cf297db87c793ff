"""
Decision Repository - Data Access Layer

Writes one DecisionRecord per turn decision, attaches the outcome once it's
known, and summarizes failure patterns across a session (or all sessions).

Recording is best-effort: database errors are logged and reported as
None/False, never raised into the decision loop.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError

from .database import session_scope
from .models import DecisionRecord

logger = logging.getLogger(__name__)

# Checked in order; first keyword hit wins
FAILURE_CATEGORIES = [
    ('timeout', ('timeout', 'timed out')),
    ('parse_error', ('parse', 'json', 'unknown_verb', 'unknown verb')),
    ('insufficient_mana', ('mana',)),
    ('name_resolution_failure', ('unit_not_found', 'card_not_found', 'not found', 'no unit', 'resolve')),
    ('attack_unavailable', ('no_attack', 'attack')),
    ('position_error', ('no_move', 'cell', 'position', 'move')),
]


def categorize_failure(reason: Optional[str]) -> str:
    """Bucket a free-text failure reason"""
    text = (reason or '').lower()
    for category, keywords in FAILURE_CATEGORIES:
        if any(k in text for k in keywords):
            return category
    return 'other'


@dataclass
class DecisionAnalysis:
    """Aggregate view over decision records"""
    total: int = 0
    with_outcome: int = 0
    successes: int = 0
    by_method: Dict[str, int] = field(default_factory=dict)
    failure_categories: Dict[str, int] = field(default_factory=dict)
    average_latency_ms: Optional[float] = None

    @property
    def success_rate(self) -> float:
        if self.with_outcome == 0:
            return 0.0
        return self.successes / self.with_outcome

    @property
    def fast_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.by_method.get('fast', 0) / self.total

    def to_dict(self) -> Dict:
        return {
            'total': self.total,
            'with_outcome': self.with_outcome,
            'successes': self.successes,
            'success_rate': round(self.success_rate, 3),
            'fast_rate': round(self.fast_rate, 3),
            'by_method': dict(self.by_method),
            'failure_categories': dict(self.failure_categories),
            'average_latency_ms': self.average_latency_ms,
        }


class DecisionRepository:
    """
    Repository for decision records.

    Args:
        session_id: Tag stored on every record written through this instance
    """

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id

    def record_decision(self, snapshot, method: str, action_ids: Iterable[int],
                        reason: str = "", confidence: float = 0.0,
                        latency_ms: Optional[float] = None,
                        explain: Optional[List[str]] = None,
                        errors: Optional[List[str]] = None) -> Optional[str]:
        """
        Store one decision with its snapshot context.

        Returns:
            The new record id, or None if the write failed
        """
        me, enemy = snapshot.me, snapshot.enemy
        record = DecisionRecord(
            session_id=self.session_id,
            turn=snapshot.turn,
            hero_hp=me.hero_hp,
            enemy_hero_hp=enemy.hero_hp,
            mana=me.mana,
            hand_size=me.hand_size,
            self_unit_count=len(snapshot.self_units),
            enemy_unit_count=len(snapshot.enemy_units),
            can_attack_units=sum(1 for u in snapshot.self_units if u.can_attack),
            method=method,
            reason=(reason or '')[:200],
            confidence=confidence,
            latency_ms=latency_ms,
            explain_text='\n'.join(explain or []) or None,
            errors_text='\n'.join(errors or []) or None,
        )
        record.action_ids = action_ids
        try:
            with session_scope() as session:
                session.add(record)
                session.flush()
                record_id = record.id
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Could not record decision for turn {snapshot.turn}: {e}")
            return None
        logger.debug(f"Recorded decision {record_id} (turn {snapshot.turn}, {method})")
        return record_id

    def attach_outcome(self, record_id: Optional[str], success: bool,
                       executed_action_id: Optional[int] = None,
                       failure_reason: str = "") -> bool:
        """
        Attach the observed outcome to an earlier decision.

        Returns:
            True if the record existed and was updated
        """
        if not record_id:
            return False
        try:
            with session_scope() as session:
                record = session.get(DecisionRecord, record_id)
                if record is None:
                    logger.warning(f"No decision record {record_id} to attach outcome to")
                    return False
                record.success = success
                record.executed_action_id = executed_action_id
                record.failure_reason = (failure_reason or None) if not success else None
                record.outcome_at = datetime.utcnow()
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Could not attach outcome to {record_id}: {e}")
            return False
        return True

    def get(self, record_id: str) -> Optional[DecisionRecord]:
        with session_scope() as session:
            record = session.get(DecisionRecord, record_id)
            if record:
                session.expunge(record)
            return record

    def recent(self, limit: int = 20) -> List[DecisionRecord]:
        """Most recent decisions for this repository's session (all if untagged)"""
        with session_scope() as session:
            query = session.query(DecisionRecord)
            if self.session_id:
                query = query.filter_by(session_id=self.session_id)
            records = query.order_by(desc(DecisionRecord.created_at)).limit(limit).all()
            for record in records:
                session.expunge(record)
            return records

    def analyze(self, all_sessions: bool = False) -> DecisionAnalysis:
        """
        Summarize decisions and failure categories.

        Args:
            all_sessions: Ignore this repository's session tag
        """
        with session_scope() as session:
            query = session.query(DecisionRecord)
            if self.session_id and not all_sessions:
                query = query.filter_by(session_id=self.session_id)
            records = query.all()

            analysis = DecisionAnalysis(total=len(records))
            methods = Counter(r.method for r in records)
            failures = Counter()
            latencies = [r.latency_ms for r in records if r.latency_ms is not None]
            for record in records:
                if record.success is None:
                    continue
                analysis.with_outcome += 1
                if record.success:
                    analysis.successes += 1
                else:
                    failures[categorize_failure(record.failure_reason)] += 1

        analysis.by_method = dict(methods)
        analysis.failure_categories = dict(failures)
        if latencies:
            analysis.average_latency_ms = sum(latencies) / len(latencies)

        logger.info(f"📊 Decisions: {analysis.total}, success {analysis.success_rate:.0%}, "
                    f"fast {analysis.fast_rate:.0%}")
        return analysis
