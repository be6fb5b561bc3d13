"""Memory module for persistent fact storage."""

from .context import MemoryContext, new_session_id
from .extractor import FactExtractor
from .models import MemoryEvent, MemoryItem, MemoryOperation, MemoryOperationResult
from .reconciler import OperationReconciler, ParsedOperations, ParseError, parse_operations
from .store import Memory

__all__ = [
    "FactExtractor",
    "Memory",
    "MemoryContext",
    "MemoryEvent",
    "MemoryItem",
    "MemoryOperation",
    "MemoryOperationResult",
    "OperationReconciler",
    "ParseError",
    "ParsedOperations",
    "new_session_id",
    "parse_operations",
]
