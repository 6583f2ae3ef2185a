# astroflow/conditions.py
import logging
import re
from typing import Any, Dict

from .models import Comparator, Condition

logger = logging.getLogger(__name__)

# marks a field absent from the variable environment
MISSING = object()


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def strict_equals(a: Any, b: Any) -> bool:
    """Equality without cross-type coercion: 1 != True, "1" != 1, lists never equal a literal."""
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, bool) and isinstance(b, bool):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return False


def to_text(v: Any) -> str:
    # literal rendering used by contains/matches: true, 3 (not 3.0), 2.5
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def _compare(value: Any, rhs: Any, op) -> bool:
    if not (_is_number(value) and _is_number(rhs)):
        return False
    return op(value, rhs)


def evaluate(env: Dict[str, Any], condition: Condition) -> bool:
    """Evaluate a single condition against the variable environment. Never raises."""
    value = env.get(condition.field, MISSING)
    rhs = condition.value
    kind = condition.type

    if kind == Comparator.EQ:
        return strict_equals(value, rhs)
    if kind == Comparator.NEQ:
        return not strict_equals(value, rhs)
    if kind == Comparator.GT:
        return _compare(value, rhs, lambda a, b: a > b)
    if kind == Comparator.LT:
        return _compare(value, rhs, lambda a, b: a < b)
    if kind == Comparator.GTE:
        return _compare(value, rhs, lambda a, b: a >= b)
    if kind == Comparator.LTE:
        return _compare(value, rhs, lambda a, b: a <= b)
    if kind == Comparator.CONTAINS:
        if isinstance(value, str):
            return to_text(rhs) in value
        if isinstance(value, (list, tuple)):
            return any(strict_equals(item, rhs) for item in value)
        return False
    if kind == Comparator.MATCHES:
        if not isinstance(value, str):
            return False
        try:
            return re.search(to_text(rhs), value) is not None
        except re.error as e:
            logger.debug("invalid pattern %r in condition on %s: %s", rhs, condition.field, e)
            return False
    return False


def evaluate_any(env: Dict[str, Any], conditions) -> bool:
    # first match wins; later conditions are not evaluated
    for condition in conditions:
        if evaluate(env, condition):
            return True
    return False
