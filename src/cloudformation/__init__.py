"""
CloudFormation stack reconciliation and event tailing.
"""

from .events import EventTailer, Severity, StackEvent, classify_status
from .parameters import StackParameter, extract_parameter_names, resolve_parameters
from .reconciler import ReconciliationOutcome, StackReconciler

__all__ = [
    "EventTailer",
    "ReconciliationOutcome",
    "Severity",
    "StackEvent",
    "StackParameter",
    "StackReconciler",
    "classify_status",
    "extract_parameter_names",
    "resolve_parameters",
]
