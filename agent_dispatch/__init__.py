"""Capacity-aware conversation assignment for Chatwoot agent pools."""

__version__ = "0.1.0"
