"""Dados de retomada produzidos por downloads cancelados."""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path

from ..errors import MalformedRequestError

RESUME_DATA_VERSION = 1


@dataclass
class ResumeData:
    """
    Estado necessário para continuar um download interrompido.

    Serializado como JSON; para quem chama é um blob opaco de bytes.
    """

    url: str
    temporary_path: str
    bytes_received: int
    headers: dict[str, str] = field(default_factory=dict)
    etag: str | None = None
    last_modified: str | None = None
    version: int = RESUME_DATA_VERSION

    @property
    def validator(self) -> str | None:
        """Valor do cabeçalho If-Range, preferindo o ETag."""
        return self.etag or self.last_modified

    def range_headers(self) -> dict[str, str]:
        """Cabeçalhos que pedem ao servidor apenas o restante do arquivo."""
        headers = {"Range": f"bytes={self.bytes_received}-"}
        if self.validator:
            headers["If-Range"] = self.validator
        return headers

    def has_partial_file(self) -> bool:
        path = Path(self.temporary_path)
        return path.is_file() and path.stat().st_size == self.bytes_received

    def to_bytes(self) -> bytes:
        return json.dumps(asdict(self), sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "ResumeData":
        """
        Decodifica um blob produzido por ``to_bytes``.

        Raises:
            MalformedRequestError: Se o blob não for um resume data válido
        """
        try:
            payload = json.loads(data)
            resume = cls(**payload)
        except (TypeError, ValueError) as e:
            raise MalformedRequestError(f"Resume data inválido: {e}") from e

        if resume.version != RESUME_DATA_VERSION or resume.bytes_received < 0:
            raise MalformedRequestError(
                f"Resume data não suportado (versão {resume.version})"
            )
        return resume

    def __repr__(self) -> str:
        return f"<ResumeData url={self.url} offset={self.bytes_received}>"
