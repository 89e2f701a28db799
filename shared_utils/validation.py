"""
Validation utilities for the proctoring service.

This module provides validation functions for configuration data,
identifiers and request payloads used throughout the system.
"""

from typing import Dict, Any, List, Tuple
import re


UUID_PATTERN = r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$'


def validate_confidence_score(confidence: float) -> bool:
    """
    Validate confidence score value.

    Args:
        confidence: Confidence score to validate

    Returns:
        True if valid, False otherwise
    """
    return (isinstance(confidence, (int, float)) and not isinstance(confidence, bool)
            and 0.0 <= confidence <= 1.0)


def validate_session_id(session_id: str) -> bool:
    """
    Validate session ID format.

    Args:
        session_id: Session ID to validate

    Returns:
        True if valid, False otherwise
    """
    if not isinstance(session_id, str):
        return False

    return bool(re.match(UUID_PATTERN, session_id, re.IGNORECASE))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_proctoring_configuration(config_dict: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate proctoring configuration data.

    Args:
        config_dict: Configuration data dictionary

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if 'confidence_threshold' in config_dict:
        if not validate_confidence_score(config_dict['confidence_threshold']):
            errors.append(f"Invalid confidence_threshold: {config_dict['confidence_threshold']}")

    # Strictly positive numbers
    positive_fields = ['camera_width', 'camera_height', 'tick_interval_seconds',
                       'screen_check_interval_seconds', 'notice_ttl_seconds']
    for field in positive_fields:
        if field in config_dict:
            value = config_dict[field]
            if not _is_number(value) or value <= 0:
                errors.append(f"Invalid {field}: {value}")

    # Non-negative numbers
    non_negative_fields = ['camera_index', 'debounce_window_seconds', 'max_violations']
    for field in non_negative_fields:
        if field in config_dict:
            value = config_dict[field]
            if not _is_number(value) or value < 0:
                errors.append(f"Invalid {field}: {value}")

    if 'model_path' in config_dict:
        if not isinstance(config_dict['model_path'], str) or not config_dict['model_path'].strip():
            errors.append(f"Invalid model_path: {config_dict['model_path']!r}")

    screening = config_dict.get('screening', {})
    if not isinstance(screening, dict):
        errors.append("Invalid screening section: expected an object")
        screening = {}
    for field in ('high_match_threshold', 'potential_threshold', 'base_score', 'per_skill_points', 'score_cap'):
        if field in screening:
            value = screening[field]
            if not _is_number(value) or not 0 <= value <= 100:
                errors.append(f"Invalid screening.{field}: {value}")

    high = screening.get('high_match_threshold')
    potential = screening.get('potential_threshold')
    if _is_number(high) and _is_number(potential) and potential > high:
        errors.append("screening.potential_threshold must not exceed screening.high_match_threshold")

    return len(errors) == 0, errors


def validate_json_payload(payload: Any, required_fields: List[str]) -> Tuple[bool, List[str]]:
    """
    Validate that a request payload is an object carrying the required fields.

    Args:
        payload: Decoded JSON body
        required_fields: Field names that must be present

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if not isinstance(payload, dict):
        return False, ["Request body must be a JSON object"]

    errors = [f"Missing required field: {field}" for field in required_fields if field not in payload]
    return len(errors) == 0, errors


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename for safe storage.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename
    """
    # Remove or replace unsafe characters
    unsafe_chars = r'[<>:"/\\|?*]'
    sanitized = re.sub(unsafe_chars, '_', filename)

    # Limit length
    if len(sanitized) > 255:
        name, ext = sanitized.rsplit('.', 1) if '.' in sanitized else (sanitized, '')
        max_name_len = 255 - len(ext) - 1 if ext else 255
        sanitized = name[:max_name_len] + ('.' + ext if ext else '')

    return sanitized
