"""Concurrency strategies for the fan-out stages."""

from .multithread import TaskOutcome, fan_out

__all__ = [
    "TaskOutcome",
    "fan_out",
]
