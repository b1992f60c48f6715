"""ChoreKeeper web application package.

``chorekeeper.webapp:app`` is built on first access so importing the package
does not open the database.
"""
from __future__ import annotations

from importlib import import_module
from types import ModuleType
from typing import Any, List

from . import persistence as _persistence

_IMPL_MODULE: ModuleType | None = None

persistence = _persistence
__all__: List[str] = ["app", "create_app", *getattr(_persistence, "__all__", ())]


def _load_impl() -> ModuleType:
    global _IMPL_MODULE
    if _IMPL_MODULE is None:
        _IMPL_MODULE = import_module(".application", __name__)
    return _IMPL_MODULE


def __getattr__(name: str) -> Any:
    if name == "app":
        return _load_impl().get_app()
    if hasattr(_persistence, name):
        return getattr(_persistence, name)
    module = _load_impl()
    try:
        return getattr(module, name)
    except AttributeError:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}") from None


def __dir__() -> List[str]:
    return sorted(set(globals()) | set(__all__))
