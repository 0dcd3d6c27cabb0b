"""
Input validation utilities.
"""

from typing import Any
import re

from ..core.exceptions import InvalidConditionError, InvalidQueryError


# Entity names: alphanumeric, underscores, hyphens, dots
ENTITY_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9_\-\.]+$')

# Maximum limits
MAX_ENTITY_NAME_LENGTH = 256
MAX_KEY_LENGTH = 1024


def validate_entity_name(entity_name: Any) -> str:
    """
    Validate an entity (collection) name.

    Args:
        entity_name: The name to validate

    Returns:
        The validated name

    Raises:
        InvalidQueryError: If the name is missing or malformed
    """
    if not isinstance(entity_name, str):
        raise InvalidQueryError(
            f"Entity name must be a string, got {type(entity_name).__name__}"
        )

    if not entity_name:
        raise InvalidQueryError("Entity name cannot be empty")

    if len(entity_name) > MAX_ENTITY_NAME_LENGTH:
        raise InvalidQueryError(
            f"Entity name too long: {len(entity_name)} characters "
            f"(max {MAX_ENTITY_NAME_LENGTH})"
        )

    if not ENTITY_NAME_PATTERN.match(entity_name):
        raise InvalidQueryError(
            f"Invalid entity name '{entity_name}': must contain only "
            "alphanumeric characters, underscores, hyphens, or dots"
        )

    return entity_name


def validate_key(key: Any) -> str:
    """
    Validate an entity key used in a condition or sort order.

    Dotted keys (``address.city``) address nested fields.

    Raises:
        InvalidConditionError: If the key is not a usable field path
    """
    if not isinstance(key, str):
        raise InvalidConditionError(
            f"Key must be a string, got {type(key).__name__}"
        )

    if not key:
        raise InvalidConditionError("Key cannot be empty")

    if len(key) > MAX_KEY_LENGTH:
        raise InvalidConditionError(
            f"Key too long: {len(key)} characters (max {MAX_KEY_LENGTH})"
        )

    if any(not part for part in key.split(".")):
        raise InvalidConditionError(f"Invalid key path '{key}'")

    return key


def validate_count(value: Any, name: str) -> int:
    """
    Validate a non-negative integer such as ``limit`` or ``skip``.

    Raises:
        InvalidQueryError: If the value is not a non-negative int
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQueryError(
            f"{name} must be an integer, got {type(value).__name__}"
        )

    if value < 0:
        raise InvalidQueryError(f"{name} must be non-negative, got {value}")

    return value
