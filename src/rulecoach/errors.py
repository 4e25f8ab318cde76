"""Exception types raised by the rulecoach engine and its collaborators."""


class RuleCoachError(Exception):
    """Base class for all rulecoach errors."""


class ContractViolation(RuleCoachError, ValueError):
    """A caller broke an input contract (missing profile, plan, or history)."""


class ConfigurationError(RuleCoachError, ValueError):
    """A rule pack is missing a key or holds inconsistent values."""


class SafetyViolationError(RuleCoachError):
    """A proposed plan failed safety validation and there is nothing to fall back to."""

    def __init__(self, message: str, validation=None):
        super().__init__(message)
        self.validation = validation


class ConcurrentUpdateError(RuleCoachError):
    """Another writer advanced the user's engine state first."""
