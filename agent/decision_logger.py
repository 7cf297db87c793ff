"""
Decision Logger

Writes one plain-text entry block per turn decision (method, action ids,
reason, explain trail, errors) to a dedicated log file, for post-game review
and for mining failure patterns.

Log files are rotated per session alongside the main log.
"""

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

_log_username = os.environ.get('AGENT_NAME', 'hero_agent')

LOG_DIR = Path(os.environ.get('AGENT_LOG_DIR', Path(__file__).parent.parent / "logs"))

DECISION_LOG_PATH = LOG_DIR / f"{_log_username}_decisions.log"

# Dedicated decision logger
decision_logger = logging.getLogger("decision_log")
decision_logger.setLevel(logging.INFO)
decision_logger.propagate = False  # Don't propagate to root logger

_file_handler: Optional[logging.FileHandler] = None


def _ensure_handler():
    """Lazily initialize the file handler."""
    global _file_handler
    if _file_handler is None:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        _file_handler = logging.FileHandler(str(DECISION_LOG_PATH), encoding='utf-8')
        _file_handler.setFormatter(logging.Formatter('%(message)s'))  # Raw format
        decision_logger.addHandler(_file_handler)


def format_entry(
    turn: int,
    method: str,
    action_ids: Iterable[int],
    reason: str = "",
    confidence: float = 0.0,
    explain: Optional[List[str]] = None,
    errors: Optional[List[str]] = None,
    latency_ms: Optional[float] = None,
) -> str:
    """Build the text block for one decision."""
    timestamp = datetime.now().isoformat()
    lines = [
        f"=== DECISION turn {turn} @ {timestamp} ===",
        f"Method: {method}",
        f"Actions: {list(action_ids)}",
    ]
    if reason:
        lines.append(f"Reason: {reason}")
    if confidence:
        lines.append(f"Confidence: {confidence:.2f}")
    if latency_ms is not None:
        lines.append(f"Latency: {latency_ms:.0f}ms")
    if explain:
        lines.append("Explain:")
        lines.extend(f"  {line}" for line in explain)
    if errors:
        lines.append("Errors:")
        lines.extend(f"  {e}" for e in errors)
    lines.append("=" * 50)
    lines.append("")  # Blank line between entries
    return '\n'.join(lines)


def log_decision(
    turn: int,
    method: str,
    action_ids: Iterable[int],
    reason: str = "",
    confidence: float = 0.0,
    explain: Optional[List[str]] = None,
    errors: Optional[List[str]] = None,
    latency_ms: Optional[float] = None,
):
    """
    Append one decision to the decision log.

    Args:
        turn: Game turn number
        method: fast / resolved / fallback
        action_ids: Ids submitted (or returned) for this decision
        reason: Short reason code
        confidence: Confidence of the choice (fast path)
        explain: Resolver explain trail
        errors: Per-intent errors, already formatted
        latency_ms: Time spent deciding
    """
    _ensure_handler()
    decision_logger.info(format_entry(turn, method, action_ids, reason, confidence,
                                      explain, errors, latency_ms))


def rotate_decision_log(session_label: str = None, won: bool = None):
    """
    Rotate the decision log file after a session ends.

    Args:
        session_label: Opponent or session name (for filename)
        won: Whether we won (for filename)
    """
    global _file_handler

    try:
        if _file_handler is None:
            return  # No log to rotate

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        result_str = "win" if won else "loss" if won is not None else "unknown"
        label_str = session_label.replace(' ', '_') if session_label else "unknown"
        new_path = LOG_DIR / f"{_log_username}_{timestamp}_vs_{label_str}_{result_str}_decisions.log"

        _file_handler.flush()
        _file_handler.close()
        decision_logger.removeHandler(_file_handler)
        _file_handler = None

        if DECISION_LOG_PATH.exists() and DECISION_LOG_PATH.stat().st_size > 0:
            shutil.move(str(DECISION_LOG_PATH), str(new_path))

        _ensure_handler()

    except OSError as e:
        # decision_logger itself may be the broken part
        logging.getLogger(__name__).error(f"Error rotating decision log: {e}")
