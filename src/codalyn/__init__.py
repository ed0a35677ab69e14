"""Codalyn: AI-native project builder core."""

__version__ = "0.1.0"
