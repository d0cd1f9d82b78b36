"""
Transformações de resposta.

Uma transformação converte os bytes acumulados de uma tarefa concluída em
um valor tipado, devolvendo ``(valor, erro)``. Ela nunca levanta exceção:
falhas viram ``ResponseSerializationError``.
"""

import json
import plistlib
from collections.abc import Callable
from typing import Any
from xml.parsers.expat import ExpatError

import httpx

from ..errors import ResponseSerializationError
from ..utils import get_logger

logger = get_logger(__name__)

TransformResult = tuple[Any, Exception | None]
ResponseTransform = Callable[[httpx.Response | None, bytes | None], TransformResult]

DEFAULT_CHARSET = "utf-8"


def raw() -> ResponseTransform:
    """Devolve os bytes sem conversão."""

    def transform(response: httpx.Response | None, data: bytes | None) -> TransformResult:
        return data, None

    return transform


def string(encoding: str | None = None) -> ResponseTransform:
    """
    Decodifica o corpo como texto.

    Args:
        encoding: Charset explícito. Se None, usa o charset declarado no
            Content-Type da resposta e, na falta dele, UTF-8.
    """

    def transform(response: httpx.Response | None, data: bytes | None) -> TransformResult:
        charset = encoding
        if charset is None and response is not None:
            charset = response.charset_encoding
        charset = charset or DEFAULT_CHARSET

        try:
            return data.decode(charset), None
        except (LookupError, UnicodeDecodeError) as e:
            return None, _serialization_error(f"Falha ao decodificar texto ({charset})", e)

    return transform


def json_value(**options: Any) -> ResponseTransform:
    """
    Decodifica o corpo como JSON.

    Args:
        **options: Repassadas a ``json.loads`` (ex.: ``parse_float=Decimal``)
    """

    def transform(response: httpx.Response | None, data: bytes | None) -> TransformResult:
        try:
            return json.loads(data, **options), None
        except (ValueError, TypeError) as e:
            return None, _serialization_error("JSON inválido", e)

    return transform


def property_list(**options: Any) -> ResponseTransform:
    """
    Decodifica o corpo como property list (XML ou binária).

    Args:
        **options: Repassadas a ``plistlib.loads`` (ex.: ``fmt``, ``dict_type``)
    """

    def transform(response: httpx.Response | None, data: bytes | None) -> TransformResult:
        try:
            return plistlib.loads(data, **options), None
        except (plistlib.InvalidFileException, ExpatError, ValueError, TypeError) as e:
            return None, _serialization_error("Property list inválida", e)

    return transform


def run_transform(
    transform: ResponseTransform,
    response: httpx.Response | None,
    data: bytes | None,
) -> TransformResult:
    """
    Executa uma transformação sobre os bytes de uma tarefa concluída.

    Sem bytes recebidos a transformação não roda e o resultado é
    ``(None, None)``. Exceções de transformações do chamador são convertidas
    em ``ResponseSerializationError``.
    """
    if data is None:
        return None, None

    try:
        return transform(response, data)
    except Exception as e:
        logger.exception("Erro inesperado na transformação da resposta")
        return None, _serialization_error("Transformação falhou", e)


def _serialization_error(message: str, cause: Exception) -> ResponseSerializationError:
    error = ResponseSerializationError(f"{message}: {cause}")
    error.__cause__ = cause
    return error
