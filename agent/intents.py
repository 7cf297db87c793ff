"""
Intent types and intent-response parsing.

An intent is a high-level statement from the intent source ("KILL Ash#1
with Skeleton", "DEPLOY Hand(Fairy) to back_center"). Verbs are a closed
Enum; an unknown verb fails at construction time with IntentParseError, and
the resolver turns that into a per-intent error instead of aborting.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 5

_HAND_SUBJECT = re.compile(r'^\s*hand\s*\((.*?)\)\s*$', re.IGNORECASE)
_FENCE = re.compile(r'```(?:json)?', re.IGNORECASE)


class IntentParseError(ValueError):
    """Raised when an intent dict can't be turned into an Intent"""


class Verb(Enum):
    KILL = "KILL"
    ATTACK = "ATTACK"
    POKE = "POKE"
    POSITION = "POSITION"
    SCREEN = "SCREEN"
    PROTECT = "PROTECT"
    DEPLOY = "DEPLOY"
    HOLD = "HOLD"
    END_TURN = "END_TURN"

    @property
    def is_attack(self) -> bool:
        return self in (Verb.KILL, Verb.ATTACK, Verb.POKE)

    @property
    def is_positional(self) -> bool:
        return self in (Verb.POSITION, Verb.SCREEN, Verb.PROTECT)

    @classmethod
    def parse(cls, value: Any) -> 'Verb':
        text = str(value or '').strip().upper().replace(' ', '_').replace('-', '_')
        text = _VERB_SYNONYMS.get(text, text)
        try:
            return cls(text)
        except ValueError:
            raise IntentParseError(f"unknown verb '{value}'") from None


_VERB_SYNONYMS = {
    'ENDTURN': 'END_TURN',
    'END': 'END_TURN',
    'PASS': 'END_TURN',
    'WAIT': 'HOLD',
    'PLAY': 'DEPLOY',
    'SUMMON': 'DEPLOY',
    'MOVE': 'POSITION',
    'DEFEND': 'PROTECT',
}


@dataclass(frozen=True)
class Intent:
    """One validated intent"""
    verb: Verb
    subject: Optional[str] = None
    target: Optional[str] = None
    priority: int = DEFAULT_PRIORITY
    reason: str = ""

    @property
    def hand_card_name(self) -> Optional[str]:
        """Card name when the subject reads ``Hand(CardName)``"""
        if not self.subject:
            return None
        match = _HAND_SUBJECT.match(self.subject)
        if not match or not match.group(1).strip():
            return None
        return match.group(1).strip()

    def describe(self) -> str:
        return f"{self.verb.value} subject={self.subject or '-'} target={self.target or '-'}"

    @classmethod
    def from_dict(cls, data: Union['Intent', Dict[str, Any]]) -> 'Intent':
        """
        Build an Intent from a source dict.

        Raises:
            IntentParseError: on a non-dict item or an unknown verb
        """
        if isinstance(data, Intent):
            return data
        if not isinstance(data, dict):
            raise IntentParseError(f"intent must be an object, got {type(data).__name__}")

        verb = Verb.parse(data.get('verb') or data.get('action') or data.get('type'))
        try:
            priority = int(data.get('priority', DEFAULT_PRIORITY))
        except (TypeError, ValueError):
            priority = DEFAULT_PRIORITY
        priority = min(5, max(1, priority))

        def text(key: str) -> Optional[str]:
            value = data.get(key)
            if value is None or str(value).strip() == '':
                return None
            return str(value).strip()

        return cls(
            verb=verb,
            subject=text('subject') or text('unit') or text('card'),
            target=text('target'),
            priority=priority,
            reason=text('reason') or '',
        )


# =============================================================================
# Response parsing
# =============================================================================

def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Pull the first JSON object out of free-form model output.

    Strips markdown fences and takes everything between the first '{' and
    the last '}'. Returns None if nothing parses.
    """
    if not text:
        return None
    cleaned = _FENCE.sub('', text)
    start = cleaned.find('{')
    end = cleaned.rfind('}')
    if start < 0 or end <= start:
        return None
    try:
        payload = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        logger.debug(f"Could not parse intent JSON: {e}")
        return None
    return payload if isinstance(payload, dict) else None


def intents_from_payload(payload: Any) -> Optional[List[Dict[str, Any]]]:
    """
    Raw intent dicts from a decoded response.

    Accepts ``{"intents": [...]}``, ``{"strategy": [...]}`` or a bare list.
    Returns None for anything non-conforming.
    """
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        items = payload.get('intents')
        if items is None:
            items = payload.get('strategy')
    else:
        return None
    if not isinstance(items, list):
        return None
    return [item for item in items if isinstance(item, dict)]


def parse_intent_text(text: Optional[str]) -> Optional[List[Dict[str, Any]]]:
    """Model output text -> raw intent dicts, or None when unusable."""
    return intents_from_payload(extract_json_object(text))
