"""
Tests for the JSON-lines runner (app.py)
"""

from unittest.mock import MagicMock

from agent.pipeline import DecisionPipeline
from agent.runtime_state import RuntimeDecisionState
from app import handle_message, parse_args
from brain import RuleBrain
from tests.board_fixtures import attack, end_turn, make_snapshot, make_unit


class TestHandleMessage:
    """Tests for message dispatch"""

    def setup_method(self):
        self.outbox = []
        self.pipeline = DecisionPipeline(intent_source=RuleBrain(), send=self.outbox.append,
                                         log_decisions=False)
        self.state = RuntimeDecisionState()

    def test_snapshot_message(self):
        reply = handle_message({'snapshot': make_snapshot(), 'actions': [end_turn(1)]},
                               self.pipeline, self.state, self.outbox)
        assert reply['action_ids'] == [1]
        assert reply['method'] == 'fast'
        assert 'plan' not in reply

    def test_actions_inside_snapshot(self):
        """legal_actions may ride inside the snapshot itself"""
        snapshot = make_snapshot(legal_actions=[end_turn(4)])
        reply = handle_message(snapshot, self.pipeline, self.state, self.outbox)
        assert reply['action_ids'] == [4]

    def test_resolved_reply_has_errors(self):
        snapshot = make_snapshot(
            self_units=[make_unit(10, 'Skeleton', 7, atk=1)],
            enemy_units=[make_unit(20, 'Goblin', 12, hp=5), make_unit(21, 'Orc', 13, hp=4)],
        )
        reply = handle_message({'snapshot': snapshot,
                                'actions': [attack(7, 10, 20), attack(8, 10, 21), end_turn()]},
                               self.pipeline, self.state, self.outbox)
        assert reply['action_ids'] == [8, 99]
        assert reply['errors'] == []

    def test_outcome_message(self):
        pipeline = MagicMock()
        reply = handle_message({'outcome': {'success': False, 'action_id': 8, 'reason': 'NO_ATTACK'}},
                               pipeline, self.state, self.outbox)
        assert reply is None
        pipeline.report_outcome.assert_called_once_with(self.state, False, 8, 'NO_ATTACK')

    def test_session_end_message(self):
        pipeline = MagicMock()
        reply = handle_message({'session_end': {'won': True, 'label': 'ladder'}},
                               pipeline, self.state, self.outbox)
        assert reply == {'session_ended': True}
        pipeline.end_session.assert_called_once_with(self.state, True, 'ladder')


class TestParseArgs:
    """Tests for the command line"""

    def test_defaults(self):
        args = parse_args([])
        assert not args.single
        assert not args.no_record

    def test_flags(self):
        args = parse_args(['--source', 'llm', '--single', '--no-record', '--session', 'ladder-7'])
        assert args.source == 'llm'
        assert args.single
        assert args.no_record
        assert args.session == 'ladder-7'
