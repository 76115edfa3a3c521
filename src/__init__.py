"""Stylio session layer - credentials, token renewal and login state."""

__version__ = "1.0.0"
