"""
Startup configuration validation
Checks the environment before the application starts serving requests
"""
import os
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid"""
    pass


def validate_flask_config(env: Optional[Mapping[str, str]] = None) -> Tuple[bool, List[str]]:
    """
    Validate session and debug settings.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    env = os.environ if env is None else env
    issues = []

    session_secret = env.get('SESSION_SECRET')
    if not session_secret:
        issues.append("Missing SESSION_SECRET environment variable")
    elif len(session_secret) < 32:
        issues.append("SESSION_SECRET should be at least 32 characters for security")

    if env.get('DEBUG', 'False').lower() in ('true', '1', 'yes'):
        issues.append("DEBUG mode is enabled - should be disabled in production")

    return len(issues) == 0, issues


def validate_database_config(env: Optional[Mapping[str, str]] = None) -> Tuple[bool, List[str]]:
    env = os.environ if env is None else env
    issues = []

    database_url = env.get('DATABASE_URL', '')
    if not database_url:
        issues.append("DATABASE_URL not set - using local SQLite database")
    elif not database_url.startswith(('sqlite://', 'postgresql://', 'postgres://', 'postgresql+psycopg2://')):
        issues.append(f"Unsupported database scheme in DATABASE_URL: {database_url.split(':', 1)[0]}")

    return len(issues) == 0, issues


def validate_seed_config(env: Optional[Mapping[str, str]] = None) -> Tuple[bool, List[str]]:
    """Demo seeding needs an initial admin password"""
    env = os.environ if env is None else env
    issues = []

    if env.get('DEMO_SEED', 'false').lower() == 'true' and not env.get('ADMIN_INITIAL_PASSWORD'):
        issues.append("ADMIN_INITIAL_PASSWORD is required when DEMO_SEED is enabled")

    return len(issues) == 0, issues


def check_production_readiness(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Run every validator and summarise the result.

    Raises:
        ConfigValidationError: when the session secret is missing or demo
            seeding is requested without an admin password
    """
    env = os.environ if env is None else env

    flask_valid, flask_issues = validate_flask_config(env)
    database_valid, database_issues = validate_database_config(env)
    seed_valid, seed_issues = validate_seed_config(env)

    if not env.get('SESSION_SECRET'):
        raise ConfigValidationError("SESSION_SECRET environment variable is required but not set")
    if not seed_valid:
        raise ConfigValidationError(seed_issues[0])

    all_issues = flask_issues + database_issues + seed_issues
    production_ready = flask_valid and database_valid and seed_valid

    if production_ready:
        logger.info("CONFIG: Production readiness check PASSED")
    else:
        logger.warning(f"CONFIG: Production readiness check found {len(all_issues)} issue(s)")
        for issue in all_issues:
            logger.warning(f"CONFIG: Issue - {issue}")

    return {
        'production_ready': production_ready,
        'issues': all_issues,
    }
