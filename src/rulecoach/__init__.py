"""rulecoach: deterministic nutrition and training target adjustment."""

__version__ = "0.1.0"

ENGINE_VERSION = "1.0.0"
