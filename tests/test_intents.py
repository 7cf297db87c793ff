"""
Tests for intents.py

Verb parsing, Intent construction and tolerant response parsing.
"""

import pytest

from agent.intents import (
    Intent, IntentParseError, Verb, extract_json_object,
    intents_from_payload, parse_intent_text,
)


class TestVerb:
    """Tests for verb parsing"""

    def test_case_insensitive(self):
        assert Verb.parse('kill') == Verb.KILL

    def test_synonyms(self):
        """Common alternates map onto the closed verb set"""
        assert Verb.parse('end turn') == Verb.END_TURN
        assert Verb.parse('pass') == Verb.END_TURN
        assert Verb.parse('Move') == Verb.POSITION
        assert Verb.parse('summon') == Verb.DEPLOY

    def test_unknown_verb_raises(self):
        """Unknown verbs fail at construction time"""
        with pytest.raises(IntentParseError):
            Verb.parse('DANCE')

    def test_verb_groups(self):
        assert Verb.POKE.is_attack
        assert Verb.SCREEN.is_positional
        assert not Verb.DEPLOY.is_attack


class TestIntent:
    """Tests for Intent.from_dict"""

    def test_from_dict(self):
        intent = Intent.from_dict({'verb': 'ATTACK', 'subject': 'Tryx', 'target': 'Ash', 'priority': 2})
        assert intent.verb == Verb.ATTACK
        assert intent.subject == 'Tryx'
        assert intent.target == 'Ash'
        assert intent.priority == 2

    def test_priority_clamped(self):
        """Priority is clamped into 1..5, junk falls back to 5"""
        assert Intent.from_dict({'verb': 'HOLD', 'priority': 9}).priority == 5
        assert Intent.from_dict({'verb': 'HOLD', 'priority': 0}).priority == 1
        assert Intent.from_dict({'verb': 'HOLD', 'priority': 'soon'}).priority == 5

    def test_alternate_keys(self):
        """'action' and 'unit' are accepted for verb and subject"""
        intent = Intent.from_dict({'action': 'position', 'unit': 'Skeleton', 'target': 'front_left'})
        assert intent.verb == Verb.POSITION
        assert intent.subject == 'Skeleton'

    def test_blank_fields_are_none(self):
        intent = Intent.from_dict({'verb': 'END_TURN', 'subject': '  ', 'target': ''})
        assert intent.subject is None
        assert intent.target is None

    def test_non_dict_raises(self):
        with pytest.raises(IntentParseError):
            Intent.from_dict(['KILL'])

    def test_hand_card_name(self):
        """DEPLOY subjects read Hand(CardName)"""
        assert Intent(Verb.DEPLOY, 'Hand(Skeleton)').hand_card_name == 'Skeleton'
        assert Intent(Verb.DEPLOY, 'hand( Mana Vault )').hand_card_name == 'Mana Vault'
        assert Intent(Verb.DEPLOY, 'Skeleton').hand_card_name is None
        assert Intent(Verb.DEPLOY, 'Hand()').hand_card_name is None


class TestResponseParsing:
    """Tests for pulling intents out of model output"""

    def test_fenced_json(self):
        """Markdown fences are stripped"""
        text = '```json\n{"intents": [{"verb": "KILL", "subject": "Tryx"}]}\n```'
        assert parse_intent_text(text) == [{'verb': 'KILL', 'subject': 'Tryx'}]

    def test_prose_around_json(self):
        """Text before and after the object is ignored"""
        text = 'Sure! Here is my plan: {"strategy": [{"verb": "END_TURN"}]} Good luck.'
        assert parse_intent_text(text) == [{'verb': 'END_TURN'}]

    def test_garbage(self):
        assert parse_intent_text('no json here') is None
        assert parse_intent_text('{broken json') is None
        assert parse_intent_text(None) is None

    def test_payload_shapes(self):
        """Bare lists work, non-dict items are dropped, wrong types are rejected"""
        assert intents_from_payload([{'verb': 'HOLD'}, 3]) == [{'verb': 'HOLD'}]
        assert intents_from_payload({'intents': 'KILL everything'}) is None
        assert intents_from_payload('KILL') is None

    def test_extract_object_only(self):
        """A JSON array at top level is not an object"""
        assert extract_json_object('[1, 2]') is None
