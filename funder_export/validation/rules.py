"""Generic validation rule evaluation.

Each rule looks at one external field of a mapped record. Rules never raise
for bad data; only a malformed rule (e.g. an invalid regex) is a
configuration error.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Protocol

from funder_export.errors import ConfigurationError
from funder_export.extractor import is_empty
from funder_export.transformer import parse_date, to_number
from funder_export.types import RuleType, Severity

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from funder_export.types import ValidationRule

logger = logging.getLogger(__name__)

__all__ = [
    "CUSTOM_CHECKS",
    "CustomCheck",
    "check_rule",
    "compile_pattern",
    "register_custom_check",
    "rule_severity",
]


class CustomCheck(Protocol):
    """Named check used by ``custom`` rules; returns True when the record passes."""

    def __call__(self, value: Any, data: Mapping[str, Any], params: Mapping[str, Any]) -> bool: ...


CUSTOM_CHECKS: dict[str, CustomCheck] = {}


def register_custom_check(name: str) -> Callable[[CustomCheck], CustomCheck]:
    """Register a function as the ``custom`` rule check called ``name``."""

    def decorator(func: CustomCheck) -> CustomCheck:
        CUSTOM_CHECKS[name] = func
        return func

    return decorator


@lru_cache(maxsize=128)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a ``format`` rule pattern.

    Raises
    ------
    ConfigurationError
        If the pattern is not a valid regular expression.
    """
    try:
        return re.compile(pattern)
    except re.error as exc:
        msg = f"Invalid format pattern {pattern!r}: {exc}"
        raise ConfigurationError(msg) from exc


def rule_severity(rule: ValidationRule) -> Severity:
    """Rules are errors unless ``params["severity"]`` downgrades them."""
    return Severity(rule.params.get("severity", Severity.ERROR))


def _required_fields(params: Mapping[str, Any]) -> list[str]:
    requires = params.get("requires", [])
    return [requires] if isinstance(requires, str) else list(requires)


def check_rule(rule: ValidationRule, data: Mapping[str, Any]) -> bool:
    """Evaluate one rule against a mapped record.

    Parameters
    ----------
    rule
        Rule to apply to ``data[rule.field]``.
    data
        Mapped record data.

    Returns
    -------
    bool
        True when the record passes. ``format``, ``range``, ``enum`` and
        ``dependency`` rules pass on empty values; ``range`` also passes on
        non-numeric values.
    """
    value = data.get(rule.field)
    params = rule.params

    match rule.type:
        case RuleType.REQUIRED:
            return not is_empty(value)

        case RuleType.FORMAT:
            pattern = params.get("pattern")
            if is_empty(value) or not pattern:
                return True
            return compile_pattern(str(pattern)).search(str(value)) is not None

        case RuleType.RANGE:
            number = None if is_empty(value) else to_number(value)
            if number is None:
                return True
            minimum, maximum = params.get("min"), params.get("max")
            if minimum is not None and number < minimum:
                return False
            return not (maximum is not None and number > maximum)

        case RuleType.ENUM:
            values = params.get("values")
            if is_empty(value) or not values:
                return True
            return str(value) in {str(v) for v in values}

        case RuleType.DEPENDENCY:
            if is_empty(value):
                return True
            return all(not is_empty(data.get(name)) for name in _required_fields(params))

        case RuleType.CUSTOM:
            name = params.get("check")
            check = CUSTOM_CHECKS.get(name) if name else None
            if check is None:
                logger.warning("Skipping custom rule on %s: unknown check %r", rule.field, name)
                return True
            return bool(check(value, data, params))

    return True


# =============================================================================
# Built-in Custom Checks
# =============================================================================


@register_custom_check("valid_date")
def _valid_date(value: Any, data: Mapping[str, Any], params: Mapping[str, Any]) -> bool:
    return is_empty(value) or parse_date(value) is not None


@register_custom_check("not_before")
def _not_before(value: Any, data: Mapping[str, Any], params: Mapping[str, Any]) -> bool:
    """Date in ``value`` is on or after the date in ``params["other"]``."""
    this, other = parse_date(value), parse_date(data.get(params.get("other", "")))
    if this is None or other is None:
        return True
    return this >= other


@register_custom_check("max_length")
def _max_length(value: Any, data: Mapping[str, Any], params: Mapping[str, Any]) -> bool:
    limit = params.get("length")
    return is_empty(value) or limit is None or len(str(value)) <= int(limit)
