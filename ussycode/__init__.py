"""Shell, VM and access commands, and arena ratings for a dev-environment gateway."""

__version__ = "0.1.0"