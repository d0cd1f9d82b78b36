"""Credenciais e desafios de autenticação."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class AuthenticationMethod(Enum):
    """Tipos de desafio que o transporte pode apresentar."""

    HTTP_BASIC = "basic"
    HTTP_DIGEST = "digest"
    SERVER_TRUST = "server_trust"


class ChallengeDisposition(Enum):
    """Decisão tomada para um desafio de autenticação."""

    USE_CREDENTIAL = "use_credential"
    PERFORM_DEFAULT_HANDLING = "perform_default_handling"
    CANCEL_AUTHENTICATION_CHALLENGE = "cancel"
    REJECT_PROTECTION_SPACE = "reject"


@dataclass(frozen=True)
class Credential:
    """Credencial de usuário/senha ou de confiança no servidor."""

    user: str | None = None
    password: str | None = None
    trust: Any = None

    @classmethod
    def for_trust(cls, trust: Any) -> "Credential | None":
        """Credencial que aceita a confiança apresentada pelo servidor."""
        if trust is None:
            return None
        return cls(trust=trust)

    @property
    def has_password(self) -> bool:
        return self.user is not None and self.password is not None

    def __repr__(self) -> str:
        if self.trust is not None:
            return "<Credential trust>"
        return f"<Credential user={self.user!r}>"


@dataclass(frozen=True)
class ProtectionSpace:
    """Região protegida de um servidor (host, porta, esquema e realm)."""

    host: str
    port: int | None
    scheme: str
    authentication_method: AuthenticationMethod
    realm: str | None = None
    server_trust: Any = None


@dataclass(frozen=True)
class AuthChallenge:
    """Desafio apresentado a uma tarefa."""

    protection_space: ProtectionSpace
    previous_failure_count: int = 0
    proposed_credential: Credential | None = None
