"""Estratégias de codificação de parâmetros."""

from .parameters import (
    RESERVED_CHARACTERS,
    CustomEncoding,
    JSONEncoding,
    ParameterEncoding,
    Parameters,
    PropertyListEncoding,
    URLEncoding,
    escape,
    query,
    query_components,
)

__all__ = [
    "RESERVED_CHARACTERS",
    "CustomEncoding",
    "JSONEncoding",
    "ParameterEncoding",
    "Parameters",
    "PropertyListEncoding",
    "URLEncoding",
    "escape",
    "query",
    "query_components",
]
