"""Orchestration of external CLI agents for bulk artifact generation."""

__version__ = "0.1.0"
