import os
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


@dataclass
class Config:
    """Configuration for the hero battle agent"""

    # Identity (used for log filenames and decision records)
    AGENT_NAME: str = os.environ.get('AGENT_NAME', 'hero_agent')
    LOG_LEVEL: str = os.environ.get('LOG_LEVEL', 'INFO')

    # Intent source: 'rules' (local rule engine) or 'llm' (HTTP chat endpoint)
    INTENT_SOURCE: str = os.environ.get('INTENT_SOURCE', 'rules')
    LLM_API_URL: str = os.environ.get('LLM_API_URL', 'http://localhost:11434/v1/chat/completions')
    LLM_API_KEY: str = os.environ.get('LLM_API_KEY', '')
    LLM_MODEL: str = os.environ.get('LLM_MODEL', 'gpt-4o-mini')

    # Hard cap on how long we wait for the intent source before falling back
    INTENT_TIMEOUT: float = float(os.environ.get('INTENT_TIMEOUT', '8.0'))

    # Intent resolution
    MAX_PLAN_IDS: int = int(os.environ.get('MAX_PLAN_IDS', '6'))
    STRICT_RESOLUTION: bool = _env_bool('STRICT_RESOLUTION', 'true')
    FUZZY_MIN_CONFIDENCE: float = float(os.environ.get('FUZZY_MIN_CONFIDENCE', '0.6'))

    # Fast-path profile
    AGGRESSIVENESS: float = float(os.environ.get('AGGRESSIVENESS', '0.5'))
    SAFETY_FIRST: bool = _env_bool('SAFETY_FIRST', 'false')

    # Decision records (SQLite)
    RECORD_DECISIONS: bool = _env_bool('RECORD_DECISIONS', 'true')

    # Paths
    BASE_DIR: str = os.path.dirname(os.path.abspath(__file__))
    DATA_DIR: str = os.environ.get('AGENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))
    LOG_DIR: str = os.environ.get('AGENT_LOG_DIR', os.path.join(BASE_DIR, 'logs'))

    # Database
    @property
    def DATABASE_URL(self) -> str:
        return f'sqlite:///{os.path.join(self.DATA_DIR, "decisions.db")}'

    def ensure_dirs(self):
        """Ensure data and log directories exist"""
        os.makedirs(self.DATA_DIR, exist_ok=True)
        os.makedirs(self.LOG_DIR, exist_ok=True)


# Create global config instance
config = Config()
