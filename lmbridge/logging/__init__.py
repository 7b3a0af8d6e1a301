"""Logging module for the bridge."""

from .setup import setup_logging

__all__ = ["setup_logging"]
