"""
Fuzzy Entity Resolver

Turns the free-text names an intent source produces ("Tryx", "skeleton#2",
"骷髅", "Tryxx") into concrete board entities.

Resolution order, first hit wins:
1. ``#N`` suffix is split off into base name + index
2. exact decorated-label match ("Tryx#2")
3. exact bare-name match (only when no index was given)
4. indexed pick: same-named candidates sorted by id, take the Nth
5. alias registry match (canonical name <-> alias list)
6. fuzzy similarity, accepted only above a confidence floor

Ties always go to the candidate that came first in the input.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import HandCard, Unit
from .strategy_config import get_config

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.6

_INDEX_SUFFIX = re.compile(r'^(.+?)\s*#\s*(\d+)$')
_SEPARATORS = re.compile(r'[\s_]+')

HERO_MARKERS = frozenset({
    'hero', 'enemy hero', 'enemyhero', 'opponent hero', 'face',
    '英雄', '敌方英雄', '敌人英雄',
})


def normalize_name(name: Any) -> str:
    """Lowercase, trim, and collapse whitespace/underscores to single spaces."""
    if name is None:
        return ''
    return _SEPARATORS.sub(' ', str(name).strip().lower()).strip()


def parse_indexed_name(name: Any) -> Tuple[str, Optional[int]]:
    """
    Split an optional ``#N`` suffix.

    Example:
        "Tryx#2" -> ("tryx", 2)
        "Tryx"   -> ("tryx", None)
    """
    normalized = normalize_name(name)
    match = _INDEX_SUFFIX.match(normalized)
    if match:
        return match.group(1).strip(), int(match.group(2))
    return normalized, None


def is_hero_marker(name: Any) -> bool:
    return normalize_name(name) in HERO_MARKERS


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance, two-row DP."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


# =============================================================================
# Alias registry
# =============================================================================

DEFAULT_ALIASES: Dict[str, List[str]] = {
    'tryx': ['崔克丝', '崔克斯', '特里克斯', 'trix'],
    'skeleton': ['骷髅', '亡灵', '骨骼', 'skele'],
    'fairy': ['小仙子', '精灵', '仙女', 'fae'],
    'minotaur': ['牛头人', '牛头', '米诺陶', 'mino'],
    'lycan': ['狼人', '莱坎', 'wolf'],
    'ash': ['艾许', '阿什', '灰烬'],
    'cinda': ['辛达', '辛达尔', '辛达火焰', 'cynda'],
    'manavault': ['mana vault', '法力井', '法力水晶'],
    'secondwind': ['second wind', '二次呼吸', '续力'],
    'archer': ['弓箭手', '射手'],
    'crossbowman': ['弩手', '弩兵', '十字弓手'],
    'hero': ['英雄', '主角'],
}


class AliasRegistry:
    """
    Canonical name -> alias list.

    Lookups are symmetric-containment: "skele" matches "skeleton" because the
    alias list for skeleton contains "skele", and "mana vault crystal" still
    maps to manavault because it contains "mana vault".
    """

    def __init__(self, aliases: Optional[Dict[str, Iterable[str]]] = None, with_defaults: bool = True):
        self._aliases: Dict[str, List[str]] = {}
        if with_defaults:
            for canonical, names in DEFAULT_ALIASES.items():
                self.register(canonical, names)
        for canonical, names in (aliases or {}).items():
            self.register(canonical, names)

    def register(self, canonical: str, aliases: Iterable[str]):
        key = normalize_name(canonical)
        existing = self._aliases.setdefault(key, [])
        for alias in aliases:
            alias = normalize_name(alias)
            if alias and alias not in existing:
                existing.append(alias)

    def canonical(self, name: Any) -> str:
        normalized = normalize_name(name)
        if not normalized or normalized in self._aliases:
            return normalized
        for canonical, alias_list in self._aliases.items():
            if normalized in alias_list:
                return canonical
        for canonical, alias_list in self._aliases.items():
            for alias in alias_list:
                if alias in normalized or normalized in alias:
                    return canonical
        return normalized

    def is_equivalent(self, a: Any, b: Any) -> bool:
        ca, cb = self.canonical(a), self.canonical(b)
        return bool(ca) and ca == cb

    def __contains__(self, name: Any) -> bool:
        return normalize_name(name) in self._aliases


def name_similarity(a: Any, b: Any, registry: Optional[AliasRegistry] = None) -> float:
    """
    Similarity in [0, 1].

    Equal names score 1.0 and alias-equivalent names 0.95. Otherwise the
    score is 0.7 x normalized edit similarity, plus a containment bonus of
    up to 0.2 when one name contains the other.
    """
    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    if registry is not None and registry.is_equivalent(na, nb):
        return 0.95
    longest = max(len(na), len(nb))
    score = 0.7 * (1 - levenshtein(na, nb) / longest)
    if na in nb or nb in na:
        score += 0.2 * min(len(na), len(nb)) / longest
    return round(score, 4)


# =============================================================================
# Resolver
# =============================================================================

@dataclass
class NameMatch:
    """Result of resolving one free-text name"""
    matched: bool
    confidence: float
    kind: str  # exact | label | alias | fuzzy | none
    item: Any = None
    alternatives: List[Any] = field(default_factory=list)

    @classmethod
    def none(cls, alternatives: Optional[List[Any]] = None, confidence: float = 0.0) -> 'NameMatch':
        return cls(False, confidence, 'none', None, alternatives or [])


@dataclass(frozen=True)
class Named:
    """Adapter giving any candidate a stable id, a base name and a decorated label"""
    key: int
    name: str
    label: str
    item: Any


class FuzzyResolver:
    """Resolves free-text names against a candidate pool."""

    def __init__(self, registry: Optional[AliasRegistry] = None,
                 min_confidence: float = DEFAULT_MIN_CONFIDENCE):
        self.registry = registry or AliasRegistry(get_config().get_section('aliases'))
        self.min_confidence = min_confidence

    def resolve(self, query: Any, candidates: Sequence[Named]) -> NameMatch:
        if not candidates:
            return NameMatch.none()
        full = normalize_name(query)
        if not full:
            return NameMatch.none([c.item for c in candidates[:5]])
        base, index = parse_indexed_name(query)

        # Decorated label
        for c in candidates:
            if normalize_name(c.label) == full:
                if index is not None:
                    return NameMatch(True, 1.0, 'exact', c.item)
                return NameMatch(True, 0.95, 'label', c.item)

        # Bare name
        if index is None:
            for c in candidates:
                if normalize_name(c.name) == base:
                    return NameMatch(True, 0.95, 'label', c.item)

        # Nth of the same-named group
        if index is not None:
            group = [c for c in candidates if normalize_name(c.name) == base]
            if not group:
                group = [c for c in candidates if self.registry.is_equivalent(c.name, base)]
            group.sort(key=lambda c: c.key)
            if group:
                if 1 <= index <= len(group):
                    chosen = group[index - 1]
                    others = [c.item for c in group if c is not chosen]
                    return NameMatch(True, 0.9, 'label', chosen.item, others)
                logger.debug(f"Index #{index} out of range for '{base}' ({len(group)} candidates)")
                return NameMatch.none([c.item for c in group])

        # Alias table
        for c in candidates:
            if self.registry.is_equivalent(c.name, base):
                return NameMatch(True, 0.85, 'alias', c.item)

        # Fuzzy
        best: Optional[Named] = None
        best_score = 0.0
        scored = []
        for c in candidates:
            score = max(name_similarity(base, c.name, self.registry),
                        name_similarity(full, c.label, self.registry))
            scored.append((score, c))
            if score > best_score:
                best, best_score = c, score
        if best is not None and best_score >= self.min_confidence:
            return NameMatch(True, best_score, 'fuzzy', best.item)

        # Raw numeric id, for sources that echo ids instead of names
        if full.isdigit():
            for c in candidates:
                if c.key == int(full):
                    return NameMatch(True, 1.0, 'exact', c.item)

        scored.sort(key=lambda pair: -pair[0])
        return NameMatch.none([c.item for _, c in scored[:5]], best_score)

    def resolve_unit(self, query: Any, units: Sequence[Unit],
                     labels: Optional[Dict[int, str]] = None,
                     predicate: Optional[Callable[[Unit], bool]] = None) -> NameMatch:
        """
        Resolve a unit name.

        Args:
            query: Free-text name, optionally with #N suffix
            units: Candidate units (usually one side)
            labels: unit_id -> decorated label
            predicate: Optional filter, e.g. "must be able to attack"
        """
        labels = labels or {}
        pool = [
            Named(u.unit_id, u.name, labels.get(u.unit_id, u.name), u)
            for u in units
            if predicate is None or predicate(u)
        ]
        result = self.resolve(query, pool)
        if not result.matched:
            logger.debug(f"No unit match for '{query}' among {len(pool)} candidates")
        return result

    def resolve_card(self, query: Any, hand: Sequence[HandCard],
                     max_mana_cost: Optional[int] = None) -> NameMatch:
        """Resolve a hand card by name, optionally only among affordable cards."""
        pool = [
            Named(c.card_id, c.name, c.name, c)
            for c in hand
            if max_mana_cost is None or c.mana_cost is None or c.mana_cost <= max_mana_cost
        ]
        return self.resolve(query, pool)
