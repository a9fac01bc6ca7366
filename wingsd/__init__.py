"""Tokens, events, configuration, backups, crash handling and request checks for a game-server daemon."""

__version__ = "0.1.0"