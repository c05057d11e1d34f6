from .decorators import actor_required, get_current_actor

from .audit import log_audit

from .parsing import parse_date, parse_optional_date, parse_time

__all__ = [
    # Decorators
    "actor_required",
    "get_current_actor",
    # Audit
    "log_audit",
    # Parsing
    "parse_date",
    "parse_optional_date",
    "parse_time",
]
