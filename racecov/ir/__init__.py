"""Intermediate representation consumed by the usage-point analysis."""

from .models import OperationKind, CFGOperation, OPERATION_ALIASES
from .control_flow_graph import ThreadFunction, ProgramCFG

__all__ = [
    'OperationKind',
    'CFGOperation',
    'OPERATION_ALIASES',
    'ThreadFunction',
    'ProgramCFG',
]
