"""
Persistence Module

SQLite database for decision records:
- per-turn decision context, choice and latency
- outcomes attached after the fact
- failure-pattern analysis
"""

from .models import DecisionRecord
from .database import init_db, get_session, session_scope, close_db
from .decision_repository import DecisionAnalysis, DecisionRepository, categorize_failure

__all__ = [
    # Models
    'DecisionRecord',
    # Database
    'init_db',
    'get_session',
    'session_scope',
    'close_db',
    # Repository
    'DecisionAnalysis',
    'DecisionRepository',
    'categorize_failure',
]
