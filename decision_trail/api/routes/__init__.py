"""API routes package."""

from . import detection
from . import executions

__all__ = ["detection", "executions"]
