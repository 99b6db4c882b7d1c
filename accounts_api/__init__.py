"""Accounts API: user registration, authentication and administration."""

__version__ = "1.0.0"
