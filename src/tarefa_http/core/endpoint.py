"""Descritor de requisição: URL base, caminho, método, cabeçalhos e parâmetros."""

from dataclasses import dataclass, field

from ..encoding import ParameterEncoding, Parameters, URLEncoding
from ..models import HTTPMethod, Request
from .transforms import ResponseTransform


@dataclass
class Endpoint:
    """
    Descrição declarativa de uma chamada.

    Os cabeçalhos valem só para a requisição construída a partir deste
    endpoint; nada é gravado na configuração compartilhada da sessão.

    Examples:
        >>> Endpoint("https://api.exemplo.com/v1/", "/usuarios").url
        'https://api.exemplo.com/v1/usuarios'
    """

    base_url: str
    path: str = ""
    method: HTTPMethod | str = HTTPMethod.GET
    headers: dict[str, str] = field(default_factory=dict)
    parameters: Parameters | None = None
    encoding: ParameterEncoding = field(default_factory=URLEncoding)
    transform: ResponseTransform | None = None

    @property
    def url(self) -> str:
        if not self.path:
            return self.base_url
        return f"{self.base_url.rstrip('/')}/{self.path.lstrip('/')}"

    def build_request(self) -> Request:
        """
        Requisição ainda sem parâmetros.

        Raises:
            MalformedRequestError: Se a URL resultante for inválida
        """
        return Request.build(self.url, self.method, headers=self.headers)
