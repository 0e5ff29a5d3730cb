"""Extractor registry: maps extractor names to listing extractor classes."""

import logging
from typing import Type

from carscout.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Extractor name -> extractor class mapping
_REGISTRY: dict[str, Type] = {}


def register_extractor(name: str):
    """Decorator to register a listing extractor class under a name."""
    def decorator(cls):
        _REGISTRY[name] = cls
        cls.name = name
        logger.debug(f"Registered extractor: {name}")
        return cls
    return decorator


def get_extractor_class(name: str) -> Type | None:
    """Look up the extractor class for a given name."""
    return _REGISTRY.get(name)


def list_extractors() -> list[str]:
    """List all registered extractor names."""
    return list(_REGISTRY.keys())


def build_extractor(source, **deps):
    """Instantiate the extractor a source is configured for."""
    cls = get_extractor_class(source.extractor)
    if cls is None:
        raise ConfigurationError(
            f"[{source.slug}] Unknown extractor '{source.extractor}' "
            f"(available: {', '.join(list_extractors())})"
        )
    return cls(source, **deps)
