"""
Bundled reference runtime for compiled graphs.
"""

from .container import Container
from .lifecycle import Lifecycle, LifecycleHook

__all__ = ["Container", "Lifecycle", "LifecycleHook"]
