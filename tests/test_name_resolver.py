"""
Tests for name_resolver.py

Decorated labels, indexed picks, aliases, fuzzy matching and the
numeric-id fallback.
"""

from agent.models import HandCard, Unit
from agent.name_resolver import (
    AliasRegistry, FuzzyResolver, is_hero_marker, levenshtein,
    name_similarity, normalize_name, parse_indexed_name,
)
from agent.perception import decorate_names


def unit(unit_id, name, owner='enemy'):
    return Unit(unit_id=unit_id, name=name, owner=owner, hp=3, atk=2)


class TestNormalization:
    """Tests for the string helpers"""

    def test_normalize(self):
        """Lowercase, trimmed, separators collapsed"""
        assert normalize_name('  Tryx_Elite ') == 'tryx elite'
        assert normalize_name(None) == ''

    def test_parse_indexed(self):
        """#N suffix splits off"""
        assert parse_indexed_name('Tryx#2') == ('tryx', 2)
        assert parse_indexed_name('Skeleton # 3') == ('skeleton', 3)
        assert parse_indexed_name('Tryx') == ('tryx', None)

    def test_levenshtein(self):
        """Classic edit distance"""
        assert levenshtein('kitten', 'sitting') == 3
        assert levenshtein('', 'abc') == 3

    def test_hero_markers(self):
        """English and Chinese hero markers"""
        assert is_hero_marker('Enemy Hero')
        assert is_hero_marker('敌方英雄')
        assert not is_hero_marker('Ash')

    def test_similarity_bounds(self):
        """Equal names score 1.0, containment adds a bonus"""
        assert name_similarity('Goblin', 'goblin') == 1.0
        assert name_similarity('Goblins', 'Goblin') > name_similarity('Gobln', 'Goblin')


class TestAliasRegistry:
    """Tests for the injectable alias table"""

    def test_default_alias(self):
        """Chinese alias maps to the canonical name"""
        registry = AliasRegistry()
        assert registry.is_equivalent('骷髅', 'Skeleton')

    def test_containment(self):
        """An alias contained in a longer name still maps"""
        registry = AliasRegistry()
        assert registry.canonical('mana vault crystal') == 'manavault'

    def test_custom_registry(self):
        """Registries can be built without the defaults"""
        registry = AliasRegistry({'golem': ['石头人']}, with_defaults=False)
        assert registry.is_equivalent('Golem', '石头人')
        assert 'skeleton' not in registry
        assert 'golem' in registry


class TestFuzzyResolver:
    """Tests for the resolution order"""

    def setup_method(self):
        self.resolver = FuzzyResolver()

    def test_single_label_match(self):
        """'Tryx' against exactly one Tryx is a label match with confidence >= 0.9"""
        tryx = unit(12, 'Tryx')
        result = self.resolver.resolve_unit('Tryx', [tryx], {12: 'Tryx'})
        assert result.matched
        assert result.kind == 'label'
        assert result.confidence >= 0.9
        assert result.item is tryx

    def test_indexed_label(self):
        """'Tryx#2' picks the second-lowest id among two Tryx"""
        units = [unit(31, 'Tryx'), unit(12, 'Tryx')]
        labels = decorate_names(units)
        result = self.resolver.resolve_unit('Tryx#2', units, labels)
        assert result.matched
        assert result.item.unit_id == 31

    def test_indexed_without_labels(self):
        """Without decorated labels the index still sorts by id"""
        units = [unit(31, 'Tryx'), unit(12, 'Tryx')]
        result = self.resolver.resolve_unit('Tryx#2', units)
        assert result.matched
        assert result.kind == 'label'
        assert result.confidence == 0.9
        assert result.item.unit_id == 31
        assert [u.unit_id for u in result.alternatives] == [12]

    def test_first_index(self):
        """'Skeleton#1' against a single Skeleton picks it"""
        skeleton = unit(10, 'Skeleton', owner='self')
        result = self.resolver.resolve_unit('Skeleton#1', [skeleton], {10: 'Skeleton'})
        assert result.matched
        assert result.item is skeleton

    def test_index_out_of_range(self):
        """An index past the group reports no match with the group as alternatives"""
        units = [unit(31, 'Tryx'), unit(12, 'Tryx')]
        result = self.resolver.resolve_unit('Tryx#3', units)
        assert not result.matched
        assert result.kind == 'none'
        assert {u.unit_id for u in result.alternatives} == {12, 31}

    def test_alias_match(self):
        """Chinese name resolves through the alias table"""
        skeleton = unit(10, 'Skeleton')
        result = self.resolver.resolve_unit('骷髅', [skeleton])
        assert result.matched
        assert result.kind == 'alias'
        assert result.confidence == 0.85

    def test_fuzzy_match(self):
        """Near-miss spelling is accepted above the confidence floor"""
        goblin = unit(5, 'Goblin')
        result = self.resolver.resolve_unit('Goblins', [goblin])
        assert result.matched
        assert result.kind == 'fuzzy'
        assert 0.6 <= result.confidence < 0.9

    def test_fuzzy_below_floor(self):
        """Unrelated names don't match"""
        result = self.resolver.resolve_unit('Dragon', [unit(5, 'Goblin')])
        assert not result.matched
        assert result.alternatives

    def test_numeric_id(self):
        """A bare id resolves to that unit"""
        result = self.resolver.resolve_unit('12', [unit(12, 'Tryx'), unit(13, 'Ash')])
        assert result.matched
        assert result.item.unit_id == 12

    def test_ties_keep_input_order(self):
        """Two bare-name matches: the first in the input wins"""
        result = self.resolver.resolve_unit('Goblin', [unit(5, 'Goblin'), unit(3, 'Goblin')])
        assert result.item.unit_id == 5

    def test_predicate_filters_pool(self):
        """Predicate removes candidates before matching"""
        ready = Unit(unit_id=1, name='Tryx', owner='self', can_attack=True)
        tired = Unit(unit_id=2, name='Tryx', owner='self', can_attack=False)
        result = self.resolver.resolve_unit('Tryx', [tired, ready], predicate=lambda u: u.can_attack)
        assert result.item is ready

    def test_card_affordability(self):
        """resolve_card ignores cards over the mana limit"""
        hand = [HandCard(5, 'Fireball', 5), HandCard(6, 'Skeleton', 2)]
        assert not self.resolver.resolve_card('Fireball', hand, max_mana_cost=3).matched
        assert self.resolver.resolve_card('Skeleton', hand, max_mana_cost=3).item.card_id == 6

    def test_empty_pool(self):
        """Nothing to match against"""
        assert not self.resolver.resolve('Tryx', []).matched
