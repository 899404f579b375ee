"""Closed-end fund premium/discount monitor."""

__version__ = "0.1.0"
