"""Modelos de requisição HTTP."""

from dataclasses import dataclass, field
from enum import Enum

import httpx

from ..errors import MalformedRequestError

SUPPORTED_SCHEMES = ("http", "https")


class HTTPMethod(str, Enum):
    """Métodos HTTP suportados."""

    DELETE = "DELETE"
    GET = "GET"
    OPTIONS = "OPTIONS"
    POST = "POST"
    PUT = "PUT"

    @classmethod
    def coerce(cls, value: "HTTPMethod | str") -> "HTTPMethod":
        """Converte uma string (qualquer caixa) no método correspondente."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as e:
            raise MalformedRequestError(f"Método HTTP não suportado: {value!r}") from e


@dataclass
class Request:
    """
    Descrição mutável de uma requisição antes de virar uma tarefa.

    O corpo é sempre ``bytes``; corpos em stream existem apenas em uploads e
    são entregues diretamente ao transporte.
    """

    url: httpx.URL
    method: HTTPMethod = HTTPMethod.GET
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes | None = None

    @classmethod
    def build(
        cls,
        url: "str | httpx.URL",
        method: HTTPMethod | str = HTTPMethod.GET,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> "Request":
        """
        Cria uma requisição validando a URL.

        Raises:
            MalformedRequestError: URL inválida, sem host ou com esquema não HTTP
        """
        return cls(
            url=parse_url(url),
            method=HTTPMethod.coerce(method),
            headers=httpx.Headers(headers or {}),
            body=body,
        )

    @classmethod
    def from_httpx(cls, request: httpx.Request) -> "Request":
        """Converte um ``httpx.Request`` já construído."""
        headers = httpx.Headers(request.headers)
        # O transporte recalcula estes cabeçalhos a cada envio
        for name in ("host", "content-length", "transfer-encoding"):
            headers.pop(name, None)

        body = None
        if isinstance(request.stream, httpx.ByteStream):
            body = request.read() or None

        return cls(
            url=parse_url(request.url),
            method=HTTPMethod.coerce(request.method),
            headers=headers,
            body=body,
        )

    @property
    def query(self) -> str | None:
        """Query string percent-encoded, ou None se a URL não tiver uma."""
        query = self.url.query.decode("ascii")
        return query or None

    def copy(self) -> "Request":
        """Cópia independente (cabeçalhos não são compartilhados)."""
        return Request(
            url=self.url,
            method=self.method,
            headers=httpx.Headers(self.headers),
            body=self.body,
        )

    def __repr__(self) -> str:
        return f"<Request {self.method.value} {self.url}>"


def parse_url(url: "str | httpx.URL") -> httpx.URL:
    """
    Valida e normaliza uma URL absoluta http(s).

    Raises:
        MalformedRequestError: Se a URL não puder ser usada numa requisição
    """
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise MalformedRequestError(f"URL inválida: {url!r} ({e})") from e

    if parsed.scheme not in SUPPORTED_SCHEMES or not parsed.host:
        raise MalformedRequestError(f"URL inválida: {url!r}")
    return parsed


def to_request(value: "Request | httpx.Request | str | httpx.URL") -> Request:
    """Aceita os formatos de requisição que o gerenciador recebe."""
    if isinstance(value, Request):
        return value
    if isinstance(value, httpx.Request):
        return Request.from_httpx(value)
    return Request.build(value)
