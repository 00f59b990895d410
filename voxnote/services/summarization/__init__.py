"""Summarisation services."""

from .client import SummarizationClient

__all__ = ["SummarizationClient"]
