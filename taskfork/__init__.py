"""Conversation forking for agent task runtimes."""

__version__ = "0.1.0"
