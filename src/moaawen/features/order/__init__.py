"""
Order package for the per-conversation order session.
"""

from .service import OrderSessionService
from .repo import OrderRepo
from .presenter import OrderPresenter
from .cache import SessionCache, KeyedLocks
from .events import OrderEvents, UsageMeter
from .actions import (
    ActionCommand,
    OrderActionInterpreter,
    clean_phone,
    parse_actions,
    strip_action_block,
)

__all__ = [
    'OrderSessionService',
    'OrderRepo',
    'OrderPresenter',
    'SessionCache',
    'KeyedLocks',
    'OrderEvents',
    'UsageMeter',
    'ActionCommand',
    'OrderActionInterpreter',
    'clean_phone',
    'parse_actions',
    'strip_action_block',
]
