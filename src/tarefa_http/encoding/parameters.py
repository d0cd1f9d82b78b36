"""
Codificação de parâmetros em requisições.

Uma árvore de parâmetros (escalares, sequências e mapeamentos aninhados) é
aplicada a uma ``Request`` de acordo com o modo escolhido: query string,
corpo JSON, corpo property list ou uma função fornecida pelo chamador.

Falhas de serialização nunca abortam a requisição: ``encode`` devolve a
requisição original intacta junto com o erro.
"""

import json
import plistlib
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlsplit, urlunsplit

import httpx

from ..errors import ParameterEncodingError
from ..models import HTTPMethod, Request
from ..utils import get_logger

logger = get_logger(__name__)

Parameters = Mapping[str, Any]

# Caracteres legais em URLs que ainda assim precisam ser escapados em
# chaves e valores; os demais caracteres fora do conjunto não reservado
# (letras, dígitos e "-._~") também são escapados.
RESERVED_CHARACTERS = ":/?&=;+!@#$()',*"

# Métodos cujos parâmetros vão para a URL em vez do corpo
QUERY_METHODS = frozenset({HTTPMethod.GET, HTTPMethod.DELETE})

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"
PLIST_CONTENT_TYPE = "application/x-plist"


def escape(string: str) -> str:
    """Percent-encoding de uma chave ou valor da query."""
    return quote(string, safe="")


def stringify(value: Any) -> str:
    """Representação textual de um escalar."""
    if value is True:
        return "1"
    if value is False:
        return "0"
    if value is None:
        return ""
    return str(value)


def query_components(key: str, value: Any) -> list[tuple[str, str]]:
    """
    Achata um valor da árvore em pares (chave, valor) já escapados.

    Mapeamentos aninhados são percorridos na ordem de iteração do próprio
    mapeamento, sem ordenação.
    """
    components: list[tuple[str, str]] = []
    if isinstance(value, Mapping):
        for nested_key, nested_value in value.items():
            components.extend(query_components(f"{key}[{nested_key}]", nested_value))
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            components.extend(query_components(f"{key}[{index}]", item))
    else:
        components.append((escape(key), escape(stringify(value))))
    return components


def query(parameters: Parameters) -> str:
    """
    Monta a query string de uma árvore de parâmetros.

    As chaves do nível superior são visitadas em ordem lexicográfica.

    Examples:
        >>> query({"foo": ["bar1", "bar2"]})
        'foo%5B0%5D=bar1&foo%5B1%5D=bar2'
    """
    components: list[tuple[str, str]] = []
    for key in sorted(parameters):
        components.extend(query_components(key, parameters[key]))
    return "&".join(f"{key}={value}" for key, value in components)


def append_query(url: httpx.URL, encoded_query: str) -> httpx.URL:
    """Acrescenta pares à query existente, sem substituí-la."""
    if not encoded_query:
        return url

    parts = urlsplit(str(url))
    new_query = f"{parts.query}&{encoded_query}" if parts.query else encoded_query
    return httpx.URL(urlunsplit(parts._replace(query=new_query)))


class ParameterEncoding(ABC):
    """Estratégia que aplica uma árvore de parâmetros a uma requisição."""

    @abstractmethod
    def encode(
        self, request: Request, parameters: Parameters | None
    ) -> tuple[Request, ParameterEncodingError | None]:
        """
        Aplica os parâmetros sobre uma cópia da requisição.

        Args:
            request: Requisição base (nunca é modificada)
            parameters: Árvore de parâmetros, ou None

        Returns:
            Tupla (requisição resultante, erro). Em caso de erro a requisição
            devolvida é a original, sem alterações.
        """


class _SerializingEncoding(ParameterEncoding):
    """Base dos modos embutidos: serializa e converte falhas em erro."""

    def encode(
        self, request: Request, parameters: Parameters | None
    ) -> tuple[Request, ParameterEncodingError | None]:
        if parameters is None:
            return request, None

        try:
            return self._apply(request.copy(), parameters), None
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(
                f"Falha ao codificar parâmetros ({type(self).__name__}) "
                f"para {request.url}: {e}"
            )
            error = ParameterEncodingError(str(e))
            error.__cause__ = e
            return request, error

    @abstractmethod
    def _apply(self, request: Request, parameters: Parameters) -> Request:
        """Altera ``request`` (uma cópia) e a devolve; exceções viram erro."""


@dataclass(frozen=True)
class URLEncoding(_SerializingEncoding):
    """
    Query string anexada à URL em GET e DELETE; para os demais métodos vira
    o corpo, com ``Content-Type: application/x-www-form-urlencoded`` quando a
    requisição ainda não define um.
    """

    def _apply(self, request: Request, parameters: Parameters) -> Request:
        encoded = query(parameters)

        if request.method in QUERY_METHODS:
            request.url = append_query(request.url, encoded)
        else:
            if "Content-Type" not in request.headers:
                request.headers["Content-Type"] = FORM_CONTENT_TYPE
            request.body = encoded.encode("utf-8")
        return request


@dataclass(frozen=True)
class JSONEncoding(_SerializingEncoding):
    """Árvore serializada como documento JSON no corpo."""

    def _apply(self, request: Request, parameters: Parameters) -> Request:
        body = json.dumps(parameters, allow_nan=False).encode("utf-8")
        request.headers["Content-Type"] = JSON_CONTENT_TYPE
        request.body = body
        return request


@dataclass(frozen=True)
class PropertyListEncoding(_SerializingEncoding):
    """Árvore serializada como property list (XML ou binária) no corpo."""

    fmt: plistlib.PlistFormat = plistlib.FMT_XML
    sort_keys: bool = True
    skipkeys: bool = False

    def _apply(self, request: Request, parameters: Parameters) -> Request:
        body = plistlib.dumps(
            dict(parameters),
            fmt=self.fmt,
            sort_keys=self.sort_keys,
            skipkeys=self.skipkeys,
        )
        request.headers["Content-Type"] = PLIST_CONTENT_TYPE
        request.body = body
        return request


CustomEncoder = Callable[
    [Request, Parameters | None], tuple[Request, ParameterEncodingError | None]
]


@dataclass(frozen=True)
class CustomEncoding(ParameterEncoding):
    """Delega toda a codificação a uma função do chamador."""

    function: CustomEncoder

    def encode(
        self, request: Request, parameters: Parameters | None
    ) -> tuple[Request, ParameterEncodingError | None]:
        if parameters is None:
            return request, None
        return self.function(request.copy(), parameters)
