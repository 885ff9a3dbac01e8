"""SOP class handler registry with decorator-based registration."""

from __future__ import annotations

from typing import Type

_registry: dict[str, Type] = {}


def register_handler(name: str):
    """Decorator to register a SOP class handler."""

    def decorator(cls: Type):
        cls.name = name
        _registry[name] = cls
        return cls

    return decorator


def get_handler(name: str, *args, **kwargs):
    """Get an instance of a registered handler by name."""
    _ensure_handlers_loaded()
    if name not in _registry:
        available = ", ".join(_registry.keys())
        raise ValueError(f"Unknown handler '{name}'. Available: {available}")
    return _registry[name](*args, **kwargs)


def find_handler_for_sop_class(sop_class_uid: str) -> str | None:
    """Return the name of the handler that claims a SOP Class UID."""
    _ensure_handlers_loaded()
    for name, cls in _registry.items():
        if sop_class_uid in cls.sop_class_uids:
            return name
    return None


def list_handlers() -> list[dict[str, object]]:
    """List all registered handlers with the SOP classes they accept."""
    _ensure_handlers_loaded()
    return [
        {"name": name, "sop_class_uids": list(cls.sop_class_uids)}
        for name, cls in _registry.items()
    ]


def _ensure_handlers_loaded():
    """Import handler modules to trigger registration."""
    import seg2vol.viewer.sop_class_handler  # noqa: F401
