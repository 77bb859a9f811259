"""DinnerPick: nearby restaurant ranking and adaptive menu recommendations."""

__version__ = "0.1.0"
