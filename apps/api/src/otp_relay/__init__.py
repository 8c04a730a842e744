"""Verification code delivery and lifecycle service."""

__version__ = "0.1.0"
