"""CLI commands for rulecoach."""

from .checkin import checkin
from .decisions import decisions
from .init import init
from .onboard import onboard
from .plans import plan
from .rulepack import rulepack

__all__ = [
    "checkin",
    "decisions",
    "init",
    "onboard",
    "plan",
    "rulepack",
]
