"""
Tests for the intent sources (brain/)

RuleBrain reads a real battle report; LLMBrain talks to a mocked
requests session.
"""

import json
from unittest.mock import MagicMock

import requests

from brain import IntentRequest, LLMBrain, RuleBrain
from tests.board_fixtures import (
    attack, build_view, end_turn, make_card, make_snapshot, make_unit, move, play,
)


def report_for(snapshot, actions):
    return build_view(snapshot, actions).report.to_dict()


class TestRuleBrain:
    """Tests for the rule-based source"""

    def setup_method(self):
        snapshot = make_snapshot(
            self_units=[make_unit(10, 'Skeleton', 7, atk=2), make_unit(11, 'Tryx', 3)],
            enemy_units=[make_unit(20, 'Goblin', 17, hp=2), make_unit(21, 'Ash', 18, hp=5)],
            hand=[make_card(5, 'Skeleton', 2), make_card(6, 'Dragon', 9)],
        )
        actions = [attack(7, 10, 20), attack(8, 10, 21), move(4, 11, 16),
                   play(11, 5, 8), play(12, 6, 6), end_turn()]
        self.response = RuleBrain().propose(IntentRequest(report=report_for(snapshot, actions), turn=3))

    def verbs(self):
        return [i['verb'] for i in self.response.intents]

    def test_kill_first(self):
        """The softest target in reach that dies is a KILL"""
        first = self.response.intents[0]
        assert first['verb'] == 'KILL'
        assert first['subject'] == 'Skeleton'
        assert first['target'] == 'Goblin'
        assert first['priority'] == 1

    def test_affordable_deploys_only(self):
        deploys = [i for i in self.response.intents if i['verb'] == 'DEPLOY']
        assert [d['subject'] for d in deploys] == ['Hand(Skeleton)']

    def test_idle_unit_positions(self):
        position = next(i for i in self.response.intents if i['verb'] == 'POSITION')
        assert position['subject'] == 'Tryx'
        assert position['target'] == 'front_center'

    def test_end_turn_last(self):
        assert self.verbs() == ['KILL', 'DEPLOY', 'POSITION', 'END_TURN']
        assert self.response.intents[-1]['priority'] == 5
        assert self.response.source == 'rules'

    def test_attack_when_not_lethal(self):
        snapshot = make_snapshot(
            self_units=[make_unit(10, 'Skeleton', 7, atk=1)],
            enemy_units=[make_unit(20, 'Goblin', 12, hp=5)],
        )
        response = RuleBrain().propose(IntentRequest(report=report_for(snapshot, [attack(7, 10, 20), end_turn()])))
        assert response.intents[0]['verb'] == 'ATTACK'
        assert response.intents[0]['priority'] == 2

    def test_empty_report(self):
        response = RuleBrain().propose(IntentRequest(report={}))
        assert [i['verb'] for i in response.intents] == ['END_TURN']


def completion(content, status=200):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = {'choices': [{'message': {'content': content}}]}
    return response


class TestLLMBrain:
    """Tests for the HTTP-backed source"""

    def setup_method(self):
        self.session = MagicMock()
        self.brain = LLMBrain('http://localhost:8000/v1/chat/completions', api_key='secret',
                              model='tactician', timeout=3.0, session=self.session)
        self.request = IntentRequest(report={'turn': 3}, turn=3, memory='push left',
                                     feedback={'success': False, 'reason': 'NO_MANA'})

    def test_success(self):
        self.session.post.return_value = completion('{"intents": [{"verb": "END_TURN"}]}')
        response = self.brain.propose(self.request)
        assert response.intents == [{'verb': 'END_TURN'}]
        assert response.source == 'llm'

    def test_request_shape(self):
        self.session.post.return_value = completion('{"intents": [{"verb": "END_TURN"}]}')
        self.brain.propose(self.request)
        kwargs = self.session.post.call_args.kwargs
        assert kwargs['headers']['Authorization'] == 'Bearer secret'
        assert kwargs['timeout'] == 3.0
        assert kwargs['json']['model'] == 'tactician'
        user = json.loads(kwargs['json']['messages'][1]['content'])
        assert user['memory'] == 'push left'
        assert user['feedback']['reason'] == 'NO_MANA'

    def test_no_key_no_auth_header(self):
        brain = LLMBrain('http://localhost:8000', session=self.session)
        self.session.post.return_value = completion('{"intents": [{"verb": "HOLD"}]}')
        brain.propose(self.request)
        assert 'Authorization' not in self.session.post.call_args.kwargs['headers']

    def test_http_error(self):
        self.session.post.return_value = completion('', status=500)
        assert self.brain.propose(self.request) is None
        assert self.brain.failures == 1

    def test_transport_error(self):
        self.session.post.side_effect = requests.ConnectionError('refused')
        assert self.brain.propose(self.request) is None

    def test_unparseable_reply(self):
        self.session.post.return_value = completion('I would attack the goblin.')
        assert self.brain.propose(self.request) is None

    def test_malformed_body(self):
        response = completion('')
        response.json.side_effect = ValueError('not json')
        self.session.post.return_value = response
        assert self.brain.propose(self.request) is None
        assert self.brain.failures == 1
