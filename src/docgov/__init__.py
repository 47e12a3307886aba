"""docgov package root."""

from docgov.exceptions import ConfigError, DocumentReadError, GovernanceError

__all__ = ["__version__", "ConfigError", "DocumentReadError", "GovernanceError"]

__version__ = "0.1.0"
