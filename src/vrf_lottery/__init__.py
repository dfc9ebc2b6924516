"""Permissionless lottery rounds settled by verifiable randomness."""

__version__ = "1.0.0"
