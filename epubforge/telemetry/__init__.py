"""Telemetry and observability helpers.

This package emits deterministic run events for conversion auditing.
"""

from .logger import RunLogger

__all__ = ["RunLogger"]
