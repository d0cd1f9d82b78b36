"""Modelos ligados às respostas recebidas pelo transporte."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

import httpx


class ResponseDisposition(Enum):
    """O que fazer com uma tarefa de dados depois de receber a resposta."""

    ALLOW = "allow"
    CANCEL = "cancel"
    BECOME_DOWNLOAD = "become_download"


@dataclass
class CachedResponse:
    """Resposta completa candidata a ser guardada no cache do transporte."""

    url: str
    status_code: int
    headers: httpx.Headers
    content: bytes
    stored_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_response(cls, response: httpx.Response, content: bytes) -> "CachedResponse":
        return cls(
            url=str(response.request.url),
            status_code=response.status_code,
            headers=httpx.Headers(response.headers),
            content=content,
        )

    def to_response(self, request: httpx.Request) -> httpx.Response:
        """Reconstrói uma ``httpx.Response`` equivalente à armazenada."""
        headers = httpx.Headers(self.headers)
        # O conteúdo guardado já está decodificado
        headers.pop("content-encoding", None)
        headers["content-length"] = str(len(self.content))
        return httpx.Response(
            self.status_code,
            headers=headers,
            content=self.content,
            request=request,
        )

    def __repr__(self) -> str:
        return f"<CachedResponse {self.status_code} {self.url} size={len(self.content)}>"


class CachePolicy(Enum):
    """Como o transporte usa o cache de respostas."""

    # Guarda respostas cacheáveis, mas sempre vai à rede
    USE_PROTOCOL_CACHE_POLICY = "use_protocol_cache_policy"
    # Não lê nem grava no cache
    RELOAD_IGNORING_CACHE = "reload_ignoring_cache"
    # Serve do cache quando houver entrada; senão vai à rede
    RETURN_CACHE_DATA_ELSE_LOAD = "return_cache_data_else_load"
