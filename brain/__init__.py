"""
Brain Package

Intent sources live here, separate from the turn pipeline, so the rule
engine and the model-backed source are swappable.
"""

from .interface import IntentRequest, IntentResponse, IntentSource
from .llm_brain import LLMBrain
from .rule_brain import RuleBrain

__all__ = [
    'IntentRequest',
    'IntentResponse',
    'IntentSource',
    'LLMBrain',
    'RuleBrain',
]
