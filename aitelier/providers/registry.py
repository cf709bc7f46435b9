"""
Provider lookup by configured name.
"""

from __future__ import annotations

from typing import Any, Dict, Type

from aitelier.core.exceptions import ConfigurationError

from .base import Provider
from .openai_provider import OpenAIProvider
from .together import TogetherProvider

PROVIDERS: Dict[str, Type[Provider]] = {
    TogetherProvider.name: TogetherProvider,
    OpenAIProvider.name: OpenAIProvider,
}


def get_provider(name: str, **kwargs: Any) -> Provider:
    """
    Build the provider registered under ``name``.

    Keyword arguments are forwarded to the provider constructor.
    """
    provider_cls = PROVIDERS.get(name.strip().lower())
    if provider_cls is None:
        known = ", ".join(sorted(PROVIDERS))
        raise ConfigurationError(f"Unknown provider '{name}'. Known providers: {known}")
    return provider_cls(**kwargs)
