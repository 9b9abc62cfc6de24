"""
Configuration Tests
===================
"""

import sys
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import celery_app
from core.config import Settings, get_settings


def test_redis_urls_from_env():
    settings = Settings.from_env({"REDIS_URL": "redis://queue:6379/2", "REDIS_RESULT_URL": "redis://queue:6379/3"})
    assert settings.redis_url == "redis://queue:6379/2"
    assert settings.redis_result_url == "redis://queue:6379/3"


def test_celery_uses_settings():
    assert celery_app.BROKER_URL == get_settings().redis_url
    assert celery_app.celery_app.conf.broker_url == get_settings().redis_url
    assert celery_app.BrokerProbe().url == get_settings().redis_url


def test_single_director_fallback():
    settings = Settings.from_env({"DIRECTOR_EMAIL": " boss@example.com "})
    assert settings.director_emails == ["boss@example.com"]


def test_production_requires_secrets():
    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        Settings.from_env({"APP_ENV": "production", "DATABASE_URL": "sqlite://"})
