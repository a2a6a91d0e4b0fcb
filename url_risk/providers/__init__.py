from .base import Provider, SyncProvider
from .builtins import builtin_providers
from .registry import Registry

__all__ = ["Provider", "SyncProvider", "Registry", "builtin_providers"]
