"""
Tests for strategy_config.py
"""

import json

from agent.strategy_config import StrategyConfig


class TestStrategyConfig:
    """Tests for loading tuning data"""

    def test_production_file(self):
        cfg = StrategyConfig()
        assert cfg.is_loaded
        assert cfg.get('fast_path', 'critical_hp') == 5
        assert 'cinda' in cfg.get_names('fast_path', 'priority_targets')

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = StrategyConfig(str(tmp_path / 'missing.json'))
        assert not cfg.is_loaded
        assert cfg.get('resolver', 'max_ids', 6) == 6
        assert cfg.get_section('aliases') == {}
        assert cfg.get_names('fast_path', 'defensive_cards', ('Skeleton',)) == frozenset({'skeleton'})

    def test_broken_json(self, tmp_path):
        path = tmp_path / 'broken.json'
        path.write_text('{"fast_path": ', encoding='utf-8')
        cfg = StrategyConfig(str(path))
        assert not cfg.is_loaded
        assert cfg.name == 'default'

    def test_custom_file(self, tmp_path):
        path = tmp_path / 'custom.json'
        path.write_text(json.dumps({'name': 'ladder', 'version': '2.0.0',
                                    'resolver': {'max_ids': 3}}), encoding='utf-8')
        cfg = StrategyConfig(str(path))
        assert cfg.name == 'ladder'
        assert cfg.version == '2.0.0'
        assert cfg.get('resolver', 'max_ids') == 3
