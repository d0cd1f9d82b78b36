"""
Handle público de uma tarefa.

``Task`` junta a tarefa do transporte e o seu delegate e expõe setters
encadeáveis e independentes: cada um escreve apenas o seu gancho, então a
ordem das chamadas não muda o resultado.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO

import httpx

from ..errors import ParameterEncodingError
from ..http.session import SessionTask, TaskKind, TaskState
from ..models import (
    AuthChallenge,
    CachedResponse,
    ChallengeDisposition,
    Credential,
    Progress,
    Request,
    ResponseDisposition,
)
from ..utils import get_logger
from . import transforms
from .delegates import (
    DelegateState,
    DestinationResolver,
    DownloadTaskDelegate,
    TaskDelegate,
    UploadTaskDelegate,
    invoke_hook,
)
from .transforms import ResponseTransform

if TYPE_CHECKING:
    from .manager import SessionManager

logger = get_logger(__name__)


@dataclass
class TaskResponse:
    """Resultado entregue ao callback de resposta de uma tarefa."""

    task: "Task"
    response: httpx.Response | None
    value: Any = None
    error: Exception | None = None
    transform_error: Exception | None = None
    encoding_error: ParameterEncodingError | None = None

    @property
    def ok(self) -> bool:
        """Sem erro de transporte, de transformação nem de codificação."""
        return (
            self.error is None
            and self.transform_error is None
            and self.encoding_error is None
        )


ResponseCallback = Callable[[TaskResponse], None]


class Task:
    """Uma unidade de trabalho em andamento, identificada pelo id do transporte."""

    def __init__(self, manager: "SessionManager", delegate: TaskDelegate):
        self.manager = manager
        self.delegate = delegate

    # ------------------------------------------------------------------
    # Observáveis
    # ------------------------------------------------------------------

    @property
    def session_task(self) -> SessionTask:
        return self.delegate.task

    @property
    def task_id(self) -> int:
        return self.delegate.task_id

    @property
    def kind(self) -> TaskKind:
        return self.session_task.kind

    @property
    def state(self) -> TaskState:
        return self.session_task.state

    @property
    def delegate_state(self) -> DelegateState:
        return self.delegate.state

    @property
    def suspended(self) -> bool:
        return self.delegate.suspended

    @property
    def progress(self) -> Progress:
        return self.delegate.progress

    @property
    def upload_progress(self) -> Progress | None:
        if isinstance(self.delegate, UploadTaskDelegate):
            return self.delegate.upload_progress
        return None

    @property
    def request(self) -> Request:
        """Requisição atual (após redirecionamentos)."""
        return self.session_task.current_request

    @property
    def http_response(self) -> httpx.Response | None:
        return self.session_task.response

    @property
    def error(self) -> Exception | None:
        return self.delegate.error

    @property
    def encoding_error(self) -> ParameterEncodingError | None:
        return self.delegate.encoding_error

    @property
    def data(self) -> bytes | None:
        return self.delegate.data

    @property
    def resume_data(self) -> bytes | None:
        if isinstance(self.delegate, DownloadTaskDelegate):
            return self.delegate.resume_data
        return None

    @property
    def destination(self) -> Path | None:
        """Caminho final de um download concluído."""
        if isinstance(self.delegate, DownloadTaskDelegate):
            return self.delegate.destination_path
        return None

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    def resume(self) -> "Task":
        self.delegate.resume()
        return self

    def suspend(self) -> "Task":
        self.delegate.suspend()
        return self

    def cancel(self) -> "Task":
        self.delegate.cancel()
        return self

    def wait(self, timeout: float | None = None) -> bool:
        return self.delegate.wait(timeout)

    # ------------------------------------------------------------------
    # Ganchos
    # ------------------------------------------------------------------

    def authenticate(
        self,
        user: str | None = None,
        password: str | None = None,
        credential: Credential | None = None,
    ) -> "Task":
        """Credencial usada pelos desafios desta tarefa."""
        if credential is None:
            credential = Credential(user=user, password=password)
        self.delegate.credential = credential
        return self

    def on_challenge(
        self,
        handler: Callable[[AuthChallenge], tuple[ChallengeDisposition, Credential | None]],
    ) -> "Task":
        self.delegate.hooks.on_challenge = handler
        return self

    def on_redirect(self, handler: Callable[[httpx.Response, Request], Request | None]) -> "Task":
        self.delegate.hooks.on_redirect = handler
        return self

    def on_body_stream(self, handler: Callable[[], BinaryIO | None]) -> "Task":
        self.delegate.hooks.on_body_stream = handler
        return self

    def on_progress(self, handler: Callable[[Progress], None]) -> "Task":
        self.delegate.hooks.on_progress = handler
        return self

    def on_upload_progress(self, handler: Callable[[int, int, int | None], None]) -> "Task":
        self.delegate.hooks.on_upload_progress = handler
        return self

    def on_download_progress(self, handler: Callable[[int, int, int | None], None]) -> "Task":
        self.delegate.hooks.on_download_progress = handler
        return self

    def on_resume(self, handler: Callable[[int, int | None], None]) -> "Task":
        self.delegate.hooks.on_resume = handler
        return self

    def on_response(self, handler: Callable[[httpx.Response], ResponseDisposition]) -> "Task":
        self.delegate.hooks.on_response = handler
        return self

    def on_data(self, handler: Callable[[bytes], None]) -> "Task":
        self.delegate.hooks.on_data = handler
        return self

    def on_cache(self, handler: Callable[[CachedResponse], CachedResponse | None]) -> "Task":
        self.delegate.hooks.on_cache = handler
        return self

    def save_to(self, resolver: DestinationResolver) -> "Task":
        """
        Define para onde o arquivo baixado será movido.

        Raises:
            TypeError: Se a tarefa não for um download
        """
        if not isinstance(self.delegate, DownloadTaskDelegate):
            raise TypeError(f"Tarefa {self.task_id} não é um download")
        self.delegate.destination = resolver
        return self

    def on_become_download(self, handler: Callable[["Task"], None]) -> "Task":
        """
        Chamado quando uma tarefa de dados vira download.

        ``handler`` recebe o ``Task`` do novo download, já registrado, e pode
        configurar seus ganchos e respostas.
        """

        def adopt(download_task: SessionTask) -> DownloadTaskDelegate:
            delegate = DownloadTaskDelegate(
                download_task,
                self.manager.callback_executor,
                credential=self.delegate.credential,
            )
            handler(Task(self.manager, delegate))
            return delegate

        self.delegate.hooks.on_become_download = adopt
        return self

    # ------------------------------------------------------------------
    # Respostas
    # ------------------------------------------------------------------

    def response_with(self, transform: ResponseTransform, callback: ResponseCallback) -> "Task":
        """
        Registra uma transformação e o callback que recebe seu resultado.

        Ambos rodam no executor de callbacks depois da conclusão da tarefa,
        nunca na thread do transporte.
        """

        def deliver() -> None:
            value, transform_error = transforms.run_transform(
                transform, self.http_response, self.data
            )
            invoke_hook(
                callback,
                TaskResponse(
                    task=self,
                    response=self.http_response,
                    value=value,
                    error=self.error,
                    transform_error=transform_error,
                    encoding_error=self.encoding_error,
                ),
            )

        self.delegate.enqueue(deliver)
        return self

    def response(self, callback: ResponseCallback) -> "Task":
        return self.response_with(transforms.raw(), callback)

    def string_response(self, callback: ResponseCallback, encoding: str | None = None) -> "Task":
        return self.response_with(transforms.string(encoding), callback)

    def json_response(self, callback: ResponseCallback, **options: Any) -> "Task":
        return self.response_with(transforms.json_value(**options), callback)

    def property_list_response(self, callback: ResponseCallback, **options: Any) -> "Task":
        return self.response_with(transforms.property_list(**options), callback)

    async def aresponse(self, transform: ResponseTransform | None = None) -> TaskResponse:
        """
        Versão asyncio de ``response_with``.

        Args:
            transform: Transformação a aplicar (padrão: bytes crus)

        Returns:
            O ``TaskResponse`` da tarefa, entregue no loop corrente
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[TaskResponse] = loop.create_future()

        def resolve(result: TaskResponse) -> None:
            if not future.done():
                future.set_result(result)

        self.response_with(
            transform or transforms.raw(),
            lambda result: loop.call_soon_threadsafe(resolve, result),
        )
        return await future

    def __repr__(self) -> str:
        return (
            f"<Task id={self.task_id} kind={self.kind.value} "
            f"state={self.delegate_state.value}>"
        )
