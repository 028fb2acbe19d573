"""
Configuration validation for the hiring service
Checks collaborator endpoints and security settings at startup
"""
import logging
from typing import Dict, List, Tuple, Any, Mapping
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

SERVICE_URL_KEYS = {
    'USER_SERVICE_URL': 'Identity service URL',
    'TRIP_SERVICE_URL': 'Trip service URL',
    'VEHICLE_SERVICE_URL': 'Vehicle service URL',
}

class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid"""
    pass

def _is_http_url(value: str) -> bool:
    parsed = urlparse(value or '')
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)

def validate_service_config(config: Mapping[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate collaborator service settings.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    for key, description in SERVICE_URL_KEYS.items():
        value = config.get(key)
        if not value:
            issues.append(f"Missing {description} ({key})")
        elif not _is_http_url(value):
            issues.append(f"{description} ({key}) must be an http(s) URL")

    try:
        timeout = float(config.get('COLLABORATOR_TIMEOUT', 5))
        if timeout <= 0:
            issues.append("COLLABORATOR_TIMEOUT must be positive")
    except (TypeError, ValueError):
        issues.append("COLLABORATOR_TIMEOUT must be a number")

    try:
        if int(config.get('OUTBOX_MAX_ATTEMPTS', 10)) < 1:
            issues.append("OUTBOX_MAX_ATTEMPTS must be at least 1")
    except (TypeError, ValueError):
        issues.append("OUTBOX_MAX_ATTEMPTS must be an integer")

    return len(issues) == 0, issues

def validate_security_config(config: Mapping[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate token and debug settings for production.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    secret = config.get('JWT_SECRET_KEY')
    if not secret:
        issues.append("Missing JWT_SECRET_KEY environment variable")
    elif len(secret) < 32:
        issues.append("JWT_SECRET_KEY should be at least 32 characters for security")

    if config.get('DEBUG'):
        issues.append("DEBUG mode is enabled - should be disabled in production")

    if str(config.get('SQLALCHEMY_DATABASE_URI', '')).startswith('sqlite'):
        issues.append("SQLite database in use - use PostgreSQL in production")

    return len(issues) == 0, issues

def check_production_readiness(config: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Aggregate every configuration check.

    Returns:
        dict: Status information including issues and recommendations
    """
    services_valid, service_issues = validate_service_config(config)
    security_valid, security_issues = validate_security_config(config)

    all_issues = service_issues + security_issues
    result = {
        'production_ready': not all_issues,
        'services_configured': services_valid,
        'security_configured': security_valid,
        'email_enabled': bool(config.get('SMTP_HOST')),
        'background_tasks_enabled': bool(config.get('ENABLE_BACKGROUND_TASKS')),
        'issues': all_issues,
        'recommendations': []
    }

    if not result['email_enabled']:
        result['recommendations'].append("Configure SMTP_HOST to send hiring emails")
    if not result['background_tasks_enabled']:
        result['recommendations'].append("Enable background tasks or run drain-outbox from cron")

    if result['production_ready']:
        logger.info("CONFIG: Production readiness check PASSED")
    else:
        logger.warning(f"CONFIG: Production readiness check FAILED - Issues: {len(all_issues)}")
        for issue in all_issues:
            logger.warning(f"CONFIG: Issue - {issue}")

    return result

def require_valid_config(config: Mapping[str, Any]) -> None:
    """Fail hard on broken collaborator settings"""
    valid, issues = validate_service_config(config)
    if not valid:
        raise ConfigValidationError("; ".join(issues))
