"""
LLM Brain

Intent source backed by a chat-completions style HTTP endpoint. The battle
report goes out as JSON, a short list of intents comes back. Any transport
error, non-200 status or unparseable reply is logged and reported as None so
the pipeline can fall back.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from agent.intents import parse_intent_text

from .interface import IntentRequest, IntentResponse, IntentSource

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You command units in a turn-based hero battle on a grid.
You receive a JSON battle report. Reply with ONLY a JSON object:
{"intents": [{"verb": ..., "subject": ..., "target": ..., "priority": 1-5, "reason": ...}]}

Verbs:
- KILL / ATTACK / POKE: subject is one of your unit labels, target is an enemy label or "enemy hero"
- POSITION / SCREEN / PROTECT: subject is your unit label, target is a zone like "front_center"
- DEPLOY: subject is "Hand(<card name>)", target is a zone like "back_left"
- HOLD: do nothing with subject
- END_TURN: finish the turn

Zones are <front|mid|back>_<left|center|right>, seen from your hero.
Use labels exactly as given (e.g. "Tryx#2"). Lower priority numbers run first.
Only use attacks listed in targets_now or targets_after_move."""


class LLMBrain(IntentSource):
    """
    Model-backed intent source.

    Args:
        api_url: Full URL of the chat-completions endpoint
        api_key: Bearer token (optional for local servers)
        model: Model name passed through to the endpoint
        timeout: Per-request timeout in seconds
        session: Injected requests.Session (tests use a mock)
    """

    name = "llm"

    def __init__(self, api_url: str, api_key: str = "", model: str = "",
                 timeout: float = 8.0, session: Optional[requests.Session] = None):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()
        self.failures = 0
        logger.info(f"LLM brain initialized for {api_url} (model={model or 'default'})")

    def build_messages(self, request: IntentRequest) -> List[Dict[str, str]]:
        user = {'turn': request.turn, 'report': request.report}
        if request.memory:
            user['memory'] = request.memory
        if request.feedback:
            user['feedback'] = request.feedback
        return [
            {'role': 'system', 'content': SYSTEM_PROMPT},
            {'role': 'user', 'content': json.dumps(user, default=str)},
        ]

    def propose(self, request: IntentRequest) -> Optional[IntentResponse]:
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f"Bearer {self.api_key}"
        body: Dict[str, Any] = {
            'messages': self.build_messages(request),
            'temperature': 0.2,
        }
        if self.model:
            body['model'] = self.model

        try:
            response = self.session.post(self.api_url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            self.failures += 1
            logger.warning(f"⚠️ Intent request failed: {e}")
            return None

        if response.status_code != 200:
            self.failures += 1
            logger.warning(f"⚠️ Intent request returned HTTP {response.status_code}")
            return None

        try:
            content = response.json()['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            self.failures += 1
            logger.warning(f"⚠️ Malformed intent response: {e}")
            return None

        intents = parse_intent_text(content)
        if intents is None:
            self.failures += 1
            logger.warning(f"⚠️ No intents in model reply: {str(content)[:200]}")
            return None

        logger.debug(f"LLM proposed {len(intents)} intents")
        return IntentResponse(intents=intents, notes=str(content)[:500], source=self.name)
