"""
Tests for decision_logger.py
"""

import pytest

from agent import decision_logger


@pytest.fixture
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(decision_logger, 'LOG_DIR', tmp_path)
    monkeypatch.setattr(decision_logger, 'DECISION_LOG_PATH', tmp_path / 'test_decisions.log')
    monkeypatch.setattr(decision_logger, '_file_handler', None)
    yield tmp_path
    if decision_logger._file_handler is not None:
        decision_logger._file_handler.close()
        decision_logger.decision_logger.removeHandler(decision_logger._file_handler)


class TestFormatEntry:
    """Tests for the entry block"""

    def test_contents(self):
        entry = decision_logger.format_entry(4, 'resolved', [7, 99], 'intents', 0.0,
                                             explain=['intent#0: ATTACK Skeleton -> Ash'],
                                             errors=['#1 NO_MANA: Dragon costs 9'], latency_ms=42.4)
        assert entry.startswith('=== DECISION turn 4 @ ')
        assert 'Method: resolved' in entry
        assert 'Actions: [7, 99]' in entry
        assert 'Latency: 42ms' in entry
        assert '  intent#0: ATTACK Skeleton -> Ash' in entry
        assert '  #1 NO_MANA: Dragon costs 9' in entry
        assert 'Confidence' not in entry

    def test_confidence_shown(self):
        entry = decision_logger.format_entry(1, 'fast', [1], 'only_end_turn', 1.0)
        assert 'Confidence: 1.00' in entry
        assert 'Explain:' not in entry


class TestLogFile:
    """Tests for writing and rotating the log"""

    def test_log_decision_writes(self, log_dir):
        decision_logger.log_decision(2, 'fast', [5], 'lethal_kill_Goblin', 0.95)
        text = (log_dir / 'test_decisions.log').read_text(encoding='utf-8')
        assert 'Reason: lethal_kill_Goblin' in text

    def test_rotate(self, log_dir):
        decision_logger.log_decision(2, 'fast', [5])
        decision_logger.rotate_decision_log('ladder bot', won=True)
        rotated = list(log_dir.glob('*_vs_ladder_bot_win_decisions.log'))
        assert len(rotated) == 1
        assert 'Method: fast' in rotated[0].read_text(encoding='utf-8')

    def test_rotate_without_log(self, log_dir):
        decision_logger.rotate_decision_log('nobody')
        assert list(log_dir.iterdir()) == []
