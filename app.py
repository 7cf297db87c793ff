"""
Hero Battle Agent - JSON-lines runner

Main entry point. Reads one JSON message per line from stdin and writes one
JSON reply per line to stdout:

    {"snapshot": {...}, "actions": [...]}      -> {"action_ids": [...], ...}
    {"outcome": {"success": false, "action_id": 12, "reason": "..."}}
    {"session_end": {"won": true, "label": "opponent"}}

The game client owns the transport; this process only decides.
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from config import config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO'):
    """Root logger: agent.log plus stderr (stdout carries the protocol)."""
    config.ensure_dirs()
    log_path = os.path.join(config.LOG_DIR, 'agent.log')
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_path, encoding='utf-8'),
            logging.StreamHandler(sys.stderr),
        ]
    )


def build_intent_source(source: str):
    """'rules' or 'llm'; anything else falls back to rules with a warning."""
    from brain import LLMBrain, RuleBrain

    if source == 'llm':
        return LLMBrain(config.LLM_API_URL, config.LLM_API_KEY, config.LLM_MODEL,
                        timeout=config.INTENT_TIMEOUT)
    if source != 'rules':
        logger.warning(f"Unknown intent source '{source}', using rules")
    return RuleBrain()


def build_repository(session_id: str):
    from persistence import DecisionRepository, init_db

    init_db(config.DATABASE_URL)
    logger.info(f"📊 Recording decisions to {config.DATABASE_URL}")
    return DecisionRepository(session_id=session_id)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Hero battle decision agent (JSON lines on stdin/stdout)")
    parser.add_argument('--source', choices=['rules', 'llm'], default=config.INTENT_SOURCE,
                        help="Intent source (default: INTENT_SOURCE env)")
    parser.add_argument('--strategy-config', default=None,
                        help="Path to a strategy JSON file (default: configs/production.json)")
    parser.add_argument('--no-record', action='store_true',
                        help="Don't write decision records to SQLite")
    parser.add_argument('--single', action='store_true',
                        help="Reply with one action id per snapshot")
    parser.add_argument('--session', default=config.AGENT_NAME,
                        help="Session tag stored on decision records")
    return parser.parse_args(argv)


def handle_message(message: Dict[str, Any], pipeline, state, outbox: List[int]) -> Optional[Dict[str, Any]]:
    """Process one decoded message; returns the reply (None for no reply)."""
    if 'outcome' in message:
        outcome = message.get('outcome') or {}
        pipeline.report_outcome(state, bool(outcome.get('success')),
                                outcome.get('action_id'), outcome.get('reason', ''))
        return None

    if 'session_end' in message:
        end = message.get('session_end') or {}
        pipeline.end_session(state, end.get('won'), end.get('label'))
        return {'session_ended': True}

    snapshot = message.get('snapshot')
    if snapshot is None:
        snapshot = message
    actions = message.get('actions')
    if actions is None and isinstance(snapshot, dict):
        actions = snapshot.get('legal_actions', snapshot.get('actions'))

    outbox.clear()
    decision = pipeline.decide(snapshot, actions or [], state)
    reply = decision.to_dict()
    # Batch mode submits through the outbox; single mode just returns the id
    reply['action_ids'] = list(outbox) if outbox else decision.action_ids
    reply.pop('plan', None)
    if decision.plan is not None:
        reply['errors'] = [e.to_dict() for e in decision.plan.errors]
    return reply


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(config.LOG_LEVEL)

    if args.strategy_config:
        from agent.strategy_config import set_config_path
        set_config_path(args.strategy_config)

    from agent.pipeline import DecisionPipeline
    from agent.runtime_state import RuntimeDecisionState

    outbox: List[int] = []
    repository = None
    if config.RECORD_DECISIONS and not args.no_record:
        repository = build_repository(args.session)

    pipeline = DecisionPipeline(
        intent_source=build_intent_source(args.source),
        send=None if args.single else outbox.append,
        repository=repository,
        timeout=config.INTENT_TIMEOUT,
        single_step=args.single,
        max_ids=config.MAX_PLAN_IDS,
        strict=config.STRICT_RESOLUTION,
        min_confidence=config.FUZZY_MIN_CONFIDENCE,
        aggressiveness=config.AGGRESSIVENESS,
        safety_first=config.SAFETY_FIRST,
    )
    state = RuntimeDecisionState()
    logger.info(f"🚀 Agent ready (source={args.source}, mode={'single' if args.single else 'batch'})")

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed input line: {e}")
            continue
        if not isinstance(message, dict):
            logger.warning("Skipping non-object input line")
            continue

        reply = handle_message(message, pipeline, state, outbox)
        if reply is not None:
            sys.stdout.write(json.dumps(reply) + '\n')
            sys.stdout.flush()

    if repository is not None:
        analysis = repository.analyze()
        logger.info(f"📊 Session summary: {analysis.to_dict()}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
