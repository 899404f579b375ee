"""Threshold evaluation and alert fan-out."""

from fundmon.alerts.dispatcher import AlertDispatcher
from fundmon.alerts.evaluator import evaluate

__all__ = [
    "AlertDispatcher",
    "evaluate",
]
