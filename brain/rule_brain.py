"""
Rule Brain Implementation

Deterministic intent source built from the battle report alone. Used as the
default source, and as the backstop when no model endpoint is configured.

Rules, in priority order:
1. KILL any enemy a unit can finish right now
2. ATTACK the best target in reach now, or after a move
3. DEPLOY affordable cards, cheapest last, into a zone that fits the tempo
4. POSITION idle units toward the front (or hold the middle when pressed)
5. END_TURN
"""

import logging
from typing import Any, Dict, List, Optional

from .interface import IntentRequest, IntentResponse, IntentSource

logger = logging.getLogger(__name__)

ENEMY_HERO = "enemy hero"


class RuleBrain(IntentSource):
    """
    Rule-based intent source.
    """

    name = "rules"

    def propose(self, request: IntentRequest) -> Optional[IntentResponse]:
        report = request.report or {}
        enemies = {u.get('label'): u for u in report.get('enemy_units', [])}
        enemy_hero_hp = (report.get('enemy') or {}).get('hero_hp')
        intents: List[Dict[str, Any]] = []

        idle = []
        for unit in report.get('my_units', []):
            atk = unit.get('atk') or 0
            now = unit.get('targets_now') or []
            later = [t.get('target') for t in unit.get('targets_after_move') or []]

            if now:
                target = self._pick_target(now, enemies, enemy_hero_hp)
                if self._kills(atk, target, enemies, enemy_hero_hp):
                    intents.append(self._intent('KILL', unit['label'], target, 1, "lethal on target"))
                else:
                    intents.append(self._intent('ATTACK', unit['label'], target, 2, "best target in reach"))
            elif later:
                target = self._pick_target(later, enemies, enemy_hero_hp)
                intents.append(self._intent('ATTACK', unit['label'], target, 2, "move into range"))
            elif unit.get('moves'):
                idle.append(unit)

        intents.extend(self._deploys(report))

        pressed = report.get('opponent_posture') == 'aggressive' or report.get('tempo') == 'behind'
        for unit in idle:
            zone = 'mid_center' if pressed else 'front_center'
            intents.append(self._intent('POSITION', unit['label'], zone, 4, "advance idle unit"))

        intents.append(self._intent('END_TURN', None, None, 5, "done"))
        logger.debug(f"RuleBrain proposed {len(intents)} intents")
        return IntentResponse(
            intents=intents,
            notes=f"tempo={report.get('tempo')} posture={report.get('opponent_posture')}",
            source=self.name,
        )

    @staticmethod
    def _intent(verb: str, subject: Optional[str], target: Optional[str],
                priority: int, reason: str) -> Dict[str, Any]:
        return {'verb': verb, 'subject': subject, 'target': target, 'priority': priority, 'reason': reason}

    @staticmethod
    def _pick_target(labels: List[str], enemies: Dict[str, Dict[str, Any]],
                     enemy_hero_hp: Optional[int]) -> str:
        """Lowest-HP target; the enemy hero only when it's the softest."""
        def hp(label: str) -> float:
            if label == ENEMY_HERO:
                return enemy_hero_hp if enemy_hero_hp is not None else float('inf')
            unit = enemies.get(label) or {}
            return unit.get('hp') if unit.get('hp') is not None else float('inf')
        return min(labels, key=hp)

    @staticmethod
    def _kills(atk: int, target: str, enemies: Dict[str, Dict[str, Any]],
               enemy_hero_hp: Optional[int]) -> bool:
        if target == ENEMY_HERO:
            return enemy_hero_hp is not None and atk >= enemy_hero_hp
        hp = (enemies.get(target) or {}).get('hp')
        return hp is not None and atk >= hp

    def _deploys(self, report: Dict[str, Any]) -> List[Dict[str, Any]]:
        mana = (report.get('me') or {}).get('mana')
        behind = report.get('tempo') == 'behind'
        zone = 'back_center' if behind else 'mid_center'
        intents = []
        cards = [c for c in report.get('hand', []) if c.get('playable_cells')]
        cards.sort(key=lambda c: -(c.get('mana_cost') or 0))
        for card in cards:
            cost = card.get('mana_cost') or 0
            if mana is not None and cost > mana:
                continue
            intents.append(self._intent('DEPLOY', f"Hand({card['name']})", zone, 3, "develop board"))
            if mana is not None:
                mana -= cost
        return intents
