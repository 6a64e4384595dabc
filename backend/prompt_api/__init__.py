"""Prompt API: text generation operations served over HTTP."""

__version__ = "1.0.0"
