"""Outbound service connectors."""

from .translate_client import TranslationClient, TranslationError, Translator

__all__ = ["TranslationClient", "TranslationError", "Translator"]
