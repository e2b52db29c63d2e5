"""Bet resolution and parlay/streak settlement service."""

__version__ = "1.0.0"
