"""
Database Models for decision records

One row per turn decision: the context it was made in, what was chosen and
how, and (once the next snapshot arrives) whether it worked.
"""

import json
import uuid
from datetime import datetime
from typing import List

from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


class DecisionRecord(Base):
    """
    A single turn decision.

    Context columns are copied from the snapshot at decision time; outcome
    columns stay NULL until attach_outcome() runs.
    """
    __tablename__ = 'decision_records'

    id = Column(String(32), primary_key=True, default=_new_id)
    session_id = Column(String(64))
    turn = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Context
    hero_hp = Column(Integer)
    enemy_hero_hp = Column(Integer)
    mana = Column(Integer)
    hand_size = Column(Integer, default=0)
    self_unit_count = Column(Integer, default=0)
    enemy_unit_count = Column(Integer, default=0)
    can_attack_units = Column(Integer, default=0)

    # Decision
    method = Column(String(20), nullable=False)  # 'fast', 'resolved', 'fallback'
    action_ids_json = Column(Text, default='[]')
    reason = Column(String(200))
    confidence = Column(Float, default=0.0)
    latency_ms = Column(Float)
    explain_text = Column(Text)
    errors_text = Column(Text)

    # Outcome
    success = Column(Boolean)
    executed_action_id = Column(Integer)
    failure_reason = Column(String(500))
    outcome_at = Column(DateTime)

    __table_args__ = (
        Index('idx_decision_session', 'session_id'),
        Index('idx_decision_method', 'method'),
    )

    @property
    def action_ids(self) -> List[int]:
        return json.loads(self.action_ids_json or '[]')

    @action_ids.setter
    def action_ids(self, value):
        self.action_ids_json = json.dumps(list(value or []))

    @property
    def has_outcome(self) -> bool:
        return self.success is not None

    def __repr__(self):
        return f"<DecisionRecord(turn {self.turn} {self.method}: {self.action_ids_json})>"
