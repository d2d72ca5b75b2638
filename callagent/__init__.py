"""Autonomous phone agent that books clinic appointments."""

__version__ = "0.1.0"
