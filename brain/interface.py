"""
Intent Source Interface - The contract between the turn pipeline and whatever
decides strategy.

An intent source receives the symbolic battle report (plus memory/feedback
context) and returns a list of high-level intents. It never sees action ids
and never submits anything: turning intents into legal actions is the
resolver's job.

Key principle: a source may fail, time out or return garbage. The pipeline
treats every such case as "no intents" and falls back; a source should
return None rather than raise.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class IntentRequest:
    """
    Everything the intent source gets for one decision.

    report is BattleReport.to_dict(): units carry decorated labels, zones,
    roles and attack hints; the hand lists playable cells.
    """
    report: Dict[str, Any]
    turn: int = 0
    memory: str = ""  # running notes carried across turns
    feedback: Optional[Dict[str, Any]] = None  # previous plan's errors/outcome


@dataclass
class IntentResponse:
    """Raw intent dicts, validated later by the resolver"""
    intents: List[Dict[str, Any]] = field(default_factory=list)
    notes: str = ""
    source: str = ""


class IntentSource(ABC):
    """
    Abstract base class for all intent sources.
    """

    name = "base"

    @abstractmethod
    def propose(self, request: IntentRequest) -> Optional[IntentResponse]:
        """
        Propose intents for the current turn.

        Args:
            request: Battle report and context

        Returns:
            IntentResponse, or None when the source has nothing usable
        """

    def on_session_end(self, won: Optional[bool] = None):
        """Called when a game session ends"""
