"""Application configuration.

Values are read from the environment (a local ``.env`` file is loaded
first) so the same code runs against the development SQLite file, a hosted
Postgres database or the in-memory database used by the tests.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-me')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///fleet_rental.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', 'uploads')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Late fees are charged per day overdue and clamped to a cap.
    DAILY_LATE_FEE = _float_env('DAILY_LATE_FEE', 120.0)
    LATE_FEE_CAP = _float_env('LATE_FEE_CAP', 3000.0)
    CURRENCY = os.environ.get('CURRENCY', 'QAR')

    # Agreement analysis goes to DeepSeek, transliteration to Perplexity.
    # Both speak the OpenAI chat-completions protocol.
    DEEPSEEK_API_KEY = os.environ.get('DEEPSEEK_API_KEY')
    DEEPSEEK_BASE_URL = os.environ.get('DEEPSEEK_BASE_URL', 'https://api.deepseek.com/v1')
    DEEPSEEK_MODEL = os.environ.get('DEEPSEEK_MODEL', 'deepseek-chat')
    PERPLEXITY_API_KEY = os.environ.get('PERPLEXITY_API_KEY')
    PERPLEXITY_BASE_URL = os.environ.get('PERPLEXITY_BASE_URL', 'https://api.perplexity.ai')
    PERPLEXITY_MODEL = os.environ.get('PERPLEXITY_MODEL', 'llama-3.1-sonar-small-128k-online')
    LLM_TIMEOUT = _float_env('LLM_TIMEOUT', 30.0)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    DEEPSEEK_API_KEY = 'test-key'
    PERPLEXITY_API_KEY = 'test-key'
