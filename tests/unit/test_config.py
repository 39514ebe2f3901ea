"""
Unit tests for startup configuration checks and database management helpers
"""

import pytest

from app import _database_config
from utils.config_validator import (
    ConfigValidationError, check_production_readiness, validate_database_config,
    validate_flask_config, validate_seed_config
)
from utils.database_manager import database_manager

STRONG_SECRET = 'x' * 40


class TestConfigValidator:

    def test_short_secret_is_flagged(self):
        is_valid, issues = validate_flask_config({'SESSION_SECRET': 'short'})
        assert is_valid is False
        assert 'at least 32 characters' in issues[0]

    def test_debug_is_flagged(self):
        is_valid, issues = validate_flask_config({'SESSION_SECRET': STRONG_SECRET, 'DEBUG': 'true'})
        assert is_valid is False

    @pytest.mark.parametrize('url,valid', [
        ('postgresql://u:p@db/fleet', True),
        ('postgres://u:p@db/fleet', True),
        ('sqlite:///fleet_desk.db', True),
        ('mysql://u:p@db/fleet', False),
        ('', False),
    ])
    def test_database_schemes(self, url, valid):
        assert validate_database_config({'DATABASE_URL': url})[0] is valid

    def test_demo_seed_needs_password(self):
        assert validate_seed_config({'DEMO_SEED': 'true'})[0] is False
        assert validate_seed_config({'DEMO_SEED': 'true', 'ADMIN_INITIAL_PASSWORD': 'secret123'})[0] is True
        assert validate_seed_config({})[0] is True

    def test_missing_secret_is_fatal(self):
        with pytest.raises(ConfigValidationError):
            check_production_readiness({})

    def test_readiness_summary(self):
        result = check_production_readiness({
            'SESSION_SECRET': STRONG_SECRET,
            'DATABASE_URL': 'postgresql://u:p@db/fleet',
        })
        assert result == {'production_ready': True, 'issues': []}


class TestDatabaseConfig:

    def test_postgres_urls_use_psycopg2(self):
        url, options = _database_config('postgres://u:p@db/fleet')
        assert url == 'postgresql+psycopg2://u:p@db/fleet'
        assert options['pool_pre_ping'] is True
        assert options['connect_args']['application_name'] == 'fleet_desk'

    def test_memory_sqlite_has_no_pool_options(self):
        assert _database_config('sqlite:///:memory:') == ('sqlite:///:memory:', {})

    def test_file_sqlite_recycles_connections(self):
        url, options = _database_config('sqlite:///fleet_desk.db')
        assert url == 'sqlite:///fleet_desk.db'
        assert options == {'pool_recycle': 300, 'pool_pre_ping': True}


class TestDatabaseManager:

    def test_connection(self, app):
        assert database_manager.test_connection() == (True, None)

    def test_schema_matches_models(self, app):
        is_valid, issues = database_manager.validate_schema_integrity()
        assert is_valid, issues

    def test_database_info_counts_rows(self, app, trip):
        info = database_manager.get_database_info()
        assert info['connection_successful'] is True
        assert info['database_version'].startswith('SQLite')
        assert info['table_statistics']['trips'] == 1
        assert info['table_statistics']['app_settings'] == 1
