"""Configurações e constantes da sessão de transporte."""

from pathlib import Path
from typing import Any

import httpx

from ..models import CachePolicy, Credential


class SessionConfig:
    """Configurações compartilhadas por todas as tarefas de uma sessão."""

    # Cabeçalhos
    DEFAULT_HEADERS = {
        "User-Agent": "tarefa-http/0.1",
        "Accept": "*/*",
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
    }

    DEFAULT_TIMEOUT = httpx.Timeout(
        connect=5.0,  # Estabelecer conexão
        read=30.0,  # Ler resposta
        write=10.0,  # Enviar dados
        pool=5.0,  # Obter conexão do pool
    )

    # Limites
    MAX_WORKERS = 8
    MAX_REDIRECTS = 20
    CHUNK_SIZE = 16_384
    CALLBACK_WORKERS = 1

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        timeout: httpx.Timeout | None = None,
        max_workers: int | None = None,
        max_redirects: int | None = None,
        chunk_size: int | None = None,
        start_immediately: bool = True,
        cache_policy: CachePolicy = CachePolicy.USE_PROTOCOL_CACHE_POLICY,
        credentials: dict[str, Credential] | None = None,
        verify: Any = True,
        evaluate_server_trust: bool = False,
        temporary_directory: str | Path | None = None,
        callback_workers: int | None = None,
    ):
        """
        Args:
            headers: Headers customizados (merge com DEFAULT_HEADERS)
            timeout: Configuração de timeout repassada ao httpx
            max_workers: Threads do pool que executa as tarefas
            max_redirects: Número máximo de redirecionamentos por tarefa
            chunk_size: Tamanho dos blocos lidos/enviados
            start_immediately: Inicia as tarefas assim que são criadas
            cache_policy: Política de uso do cache de respostas
            credentials: Credenciais armazenadas por host
            verify: Verificação TLS (bool, caminho de CA ou ssl.SSLContext)
            evaluate_server_trust: Apresenta desafios de confiança em https
            temporary_directory: Diretório dos arquivos temporários de download
            callback_workers: Threads que entregam os callbacks de resposta
        """
        self.headers = {**self.DEFAULT_HEADERS, **(headers or {})}
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.max_workers = max_workers or self.MAX_WORKERS
        self.max_redirects = (
            self.MAX_REDIRECTS if max_redirects is None else max_redirects
        )
        self.chunk_size = chunk_size or self.CHUNK_SIZE
        self.start_immediately = start_immediately
        self.cache_policy = cache_policy
        self.credentials = dict(credentials or {})
        self.verify = verify
        self.evaluate_server_trust = evaluate_server_trust
        self.temporary_directory = (
            Path(temporary_directory) if temporary_directory else None
        )
        self.callback_workers = callback_workers or self.CALLBACK_WORKERS

        self._validate_config()

    def _validate_config(self) -> None:
        """Valida as configurações."""
        if self.max_workers <= 0:
            raise ValueError(f"max_workers deve ser positivo: {self.max_workers}")
        if self.max_redirects < 0:
            raise ValueError(
                f"max_redirects não pode ser negativo: {self.max_redirects}"
            )
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size deve ser positivo: {self.chunk_size}")
        if self.callback_workers <= 0:
            raise ValueError(
                f"callback_workers deve ser positivo: {self.callback_workers}"
            )
        if self.temporary_directory and not self.temporary_directory.is_dir():
            raise ValueError(
                f"Diretório temporário inexistente: {self.temporary_directory}"
            )

    def credential_for(self, host: str) -> Credential | None:
        """Credencial armazenada para um host, se houver."""
        return self.credentials.get(host)

    def __repr__(self) -> str:
        return (
            f"<SessionConfig workers={self.max_workers} "
            f"cache={self.cache_policy.value}>"
        )
