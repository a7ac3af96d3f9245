"""Petal - mirrors a user's Spotify library into a shared relational catalog."""

__version__ = "0.1.0"
