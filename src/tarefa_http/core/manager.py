"""
Gerenciador de sessão.

Ponto de entrada da biblioteca: monta requisições, codifica parâmetros,
cria as tarefas no transporte e registra seus delegates no roteador.
"""

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import httpx

from ..encoding import ParameterEncoding, Parameters, URLEncoding
from ..errors import ParameterEncodingError
from ..http.session import SessionTask, TransportSession, UploadBody
from ..models import HTTPMethod, Request, to_request
from ..utils import get_logger
from . import transforms
from .config import SessionConfig
from .delegates import (
    DataTaskDelegate,
    DestinationResolver,
    DownloadTaskDelegate,
    TaskDelegate,
    UploadTaskDelegate,
)
from .endpoint import Endpoint
from .router import SessionEventRouter
from .task import ResponseCallback, Task

logger = get_logger(__name__)

RequestLike = Request | httpx.Request | str | httpx.URL


class SessionManager:
    """
    Dono de uma sessão de transporte compartilhada e do registro de delegates.

    Pode ser usado como context manager; ``close()`` cancela as tarefas
    pendentes e libera threads e conexões.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Args:
            config: Configuração da sessão (usará a padrão se None)
            transport: Transporte httpx alternativo, repassado ao cliente
        """
        self.config = config or SessionConfig()
        # Serial por padrão: callbacks de resposta chegam um de cada vez
        self.callback_executor = ThreadPoolExecutor(
            max_workers=self.config.callback_workers,
            thread_name_prefix="tarefa-http-callback",
        )
        self.router = SessionEventRouter(self.callback_executor)
        self.session = TransportSession(self.config, self.router, transport)
        self._lock = threading.Lock()

    @property
    def start_immediately(self) -> bool:
        return self.config.start_immediately

    @property
    def active_task_count(self) -> int:
        """Tarefas registradas e ainda não concluídas."""
        return len(self.router)

    # ------------------------------------------------------------------
    # Criação de tarefas
    # ------------------------------------------------------------------

    def task(
        self,
        method: HTTPMethod | str,
        url: str | httpx.URL,
        parameters: Parameters | None = None,
        encoding: ParameterEncoding | None = None,
        headers: dict[str, str] | None = None,
    ) -> Task:
        """
        Cria uma tarefa de dados a partir de método, URL e parâmetros.

        Falha de codificação não impede a tarefa: ela é enviada com a
        requisição original e o erro fica em ``Task.encoding_error``.

        Args:
            method: Método HTTP
            url: URL absoluta http(s)
            parameters: Árvore de parâmetros
            encoding: Modo de codificação (padrão: ``URLEncoding``)
            headers: Cabeçalhos desta requisição

        Raises:
            MalformedRequestError: URL ou método inválido; nenhuma tarefa é criada
        """
        request = Request.build(url, method, headers=headers)
        encoded, error = (encoding or URLEncoding()).encode(request, parameters)
        return self._submit(
            lambda: self.session.create_data_task(encoded),
            DataTaskDelegate,
            encoding_error=error,
        )

    def send(self, request: RequestLike, discard_body: bool = False) -> Task:
        """
        Cria uma tarefa para uma requisição já montada, sem codificação.

        Args:
            request: Requisição (``Request``, ``httpx.Request`` ou URL)
            discard_body: Tarefa simples, que não acumula o corpo da resposta
        """
        request = to_request(request)
        if discard_body:
            return self._submit(lambda: self.session.create_task(request), TaskDelegate)
        return self._submit(lambda: self.session.create_data_task(request), DataTaskDelegate)

    def upload(self, request: RequestLike, body: UploadBody) -> Task:
        """
        Envia ``body`` (bytes, arquivo em disco ou stream binário).

        URLs soltas viram um POST.
        """
        if isinstance(request, (str, httpx.URL)):
            request = Request.build(request, HTTPMethod.POST)
        request = to_request(request)
        return self._submit(
            lambda: self.session.create_upload_task(request, body), UploadTaskDelegate
        )

    def download(
        self, request: RequestLike, destination: DestinationResolver | None = None
    ) -> Task:
        """
        Baixa o corpo da resposta para um arquivo.

        Args:
            request: Requisição a baixar
            destination: Recebe (arquivo temporário, resposta) ao fim da
                transferência e devolve o caminho final; o arquivo é movido
                para lá antes da conclusão da tarefa
        """
        request = to_request(request)
        return self._submit(
            lambda: self.session.create_download_task(request),
            DownloadTaskDelegate,
            destination=destination,
        )

    def download_resuming(
        self, resume_data: bytes, destination: DestinationResolver | None = None
    ) -> Task:
        """
        Retoma um download cancelado com ``Task.cancel()``.

        Raises:
            MalformedRequestError: Se ``resume_data`` for inválido
        """
        return self._submit(
            lambda: self.session.create_download_task_with_resume_data(resume_data),
            DownloadTaskDelegate,
            destination=destination,
        )

    def endpoint_task(
        self, endpoint: Endpoint, callback: ResponseCallback | None = None
    ) -> Task:
        """
        Cria a tarefa descrita por ``endpoint``.

        Se ``callback`` for dado, recebe o resultado da transformação do
        endpoint (bytes crus quando ele não define uma).
        """
        request = endpoint.build_request()
        encoded, error = endpoint.encoding.encode(request, endpoint.parameters)
        task = self._submit(
            lambda: self.session.create_data_task(encoded),
            DataTaskDelegate,
            encoding_error=error,
        )
        if callback is not None:
            task.response_with(endpoint.transform or transforms.raw(), callback)
        return task

    def _submit(
        self,
        create: Callable[[], SessionTask],
        delegate_class: type[TaskDelegate],
        encoding_error: ParameterEncodingError | None = None,
        **delegate_options: Any,
    ) -> Task:
        # Tarefa criada e delegate registrado sob o mesmo lock, antes de
        # qualquer evento poder ser emitido para o novo id
        with self._lock:
            session_task = create()
            delegate = delegate_class(
                session_task, self.callback_executor, **delegate_options
            )
            delegate.encoding_error = encoding_error
            self.router.register(delegate)

        task = Task(self, delegate)
        logger.debug(
            f"Tarefa {task.task_id} registrada: "
            f"{session_task.original_request.method.value} {session_task.original_request.url}"
        )
        if self.start_immediately:
            task.resume()
        return task

    # ------------------------------------------------------------------
    # Encerramento
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.session.close()
        self.callback_executor.shutdown(wait=True)

    def __enter__(self) -> "SessionManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<SessionManager tasks={self.active_task_count} config={self.config!r}>"


_default_manager: SessionManager | None = None
_default_manager_lock = threading.Lock()


def default_manager() -> SessionManager:
    """Instância compartilhada do processo, criada na primeira chamada."""
    global _default_manager
    with _default_manager_lock:
        if _default_manager is None:
            _default_manager = SessionManager()
            logger.debug("Gerenciador padrão criado")
        return _default_manager
