"""Provider factory: returns the right provider instance or falls back to manual."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from nota_ocr.core.config import Settings, get_settings

from .base import MANUAL_PROVIDER_ID, BaseProvider, ProviderResult, manual_sentinel
from .manual import ManualProvider

logger = logging.getLogger(__name__)

__all__ = [
    "MANUAL_PROVIDER_ID",
    "BaseProvider",
    "ManualProvider",
    "ProviderResult",
    "build_providers",
    "get_provider",
    "manual_sentinel",
]


def get_provider(provider_name: str, settings: Settings | None = None) -> BaseProvider:
    """Return a provider instance for *provider_name*.

    If the requested provider is not in the allowlist, is missing its
    credentials, or is unknown, we fall back to ``ManualProvider``.
    """
    settings = settings or get_settings()
    name = provider_name.lower().strip()

    if name == MANUAL_PROVIDER_ID:
        return ManualProvider()

    if name not in settings.ocr_allowed_providers:
        logger.warning("Provider %r not in allowlist – falling back to manual", name)
        return ManualProvider()

    if name == "gemini":
        if not settings.gemini_api_key:
            logger.warning("GEMINI_API_KEY not set – falling back to manual")
            return ManualProvider()
        from .gemini import GeminiProvider

        return GeminiProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
        )

    if name == "tesseract":
        from .tesseract import TesseractProvider

        return TesseractProvider(lang=settings.tesseract_lang, tesseract_cmd=settings.tesseract_cmd)

    logger.warning("Unknown provider %r – falling back to manual", name)
    return ManualProvider()


def build_providers(
    provider_names: Iterable[str], settings: Settings | None = None
) -> dict[str, BaseProvider]:
    """Instantiate every provider named in *provider_names*, keyed by the requested name."""
    settings = settings or get_settings()
    providers: dict[str, BaseProvider] = {}
    for name in provider_names:
        key = name.lower().strip()
        if key and key not in providers:
            providers[key] = get_provider(key, settings)
    return providers
