"""Adapters — tool bindings for helm, kubectl and the verification suite.

Public re-exports for convenient access.
"""

from chartverify.adapters.base import Adapter, ExecutionContext
from chartverify.adapters.mock import MockAdapter
from chartverify.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
