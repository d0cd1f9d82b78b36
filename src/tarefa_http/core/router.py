"""
Roteador de eventos da sessão.

Recebe todos os callbacks do transporte, encontra o delegate dono da
tarefa pelo id e repassa o evento quando a variante do delegate trata
aquele tipo de evento. Eventos de tarefas desconhecidas (ainda não
registradas ou já removidas) são ignorados em silêncio.
"""

import threading
from collections.abc import Callable
from concurrent.futures import Executor
from pathlib import Path
from typing import BinaryIO

import httpx

from ..http.session import SessionTask, TransportSession
from ..models import (
    AuthChallenge,
    CachedResponse,
    ChallengeDisposition,
    Credential,
    Request,
    ResponseDisposition,
)
from ..utils import get_logger
from .delegates import (
    DataTaskDelegate,
    DownloadTaskDelegate,
    TaskDelegate,
    UploadTaskDelegate,
    invoke_hook,
)

logger = get_logger(__name__)


class SessionEventRouter:
    """
    Registro id → delegate e despacho dos eventos do transporte.

    O registro é o único estado compartilhado entre tarefas; inserções,
    remoções e consultas passam pelo mesmo lock, que nunca é mantido
    durante a chamada a um delegate.
    """

    def __init__(self, callback_executor: Executor):
        """
        Args:
            callback_executor: Executor usado pelos delegates criados aqui
                (ex.: quando uma tarefa de dados vira download)
        """
        self.callback_executor = callback_executor
        self.on_session_invalid: Callable[[Exception | None], None] | None = None
        self._delegates: dict[int, TaskDelegate] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registro
    # ------------------------------------------------------------------

    def register(self, delegate: TaskDelegate) -> None:
        with self._lock:
            self._delegates[delegate.task_id] = delegate

    def evict(self, task_id: int) -> TaskDelegate | None:
        with self._lock:
            return self._delegates.pop(task_id, None)

    def get(self, task_id: int) -> TaskDelegate | None:
        with self._lock:
            return self._delegates.get(task_id)

    def __getitem__(self, task_id: int) -> TaskDelegate:
        delegate = self.get(task_id)
        if delegate is None:
            raise KeyError(task_id)
        return delegate

    def __contains__(self, task_id: int) -> bool:
        with self._lock:
            return task_id in self._delegates

    def __len__(self) -> int:
        with self._lock:
            return len(self._delegates)

    def __repr__(self) -> str:
        return f"<SessionEventRouter delegates={len(self)}>"

    # ------------------------------------------------------------------
    # Eventos de qualquer tarefa
    # ------------------------------------------------------------------

    def did_receive_challenge(
        self, task: SessionTask, challenge: AuthChallenge
    ) -> tuple[ChallengeDisposition, Credential | None]:
        delegate = self.get(task.task_id)
        if delegate is None:
            return ChallengeDisposition.PERFORM_DEFAULT_HANDLING, None
        return delegate.did_receive_challenge(challenge)

    def will_perform_redirection(
        self, task: SessionTask, response: httpx.Response, request: Request
    ) -> Request | None:
        delegate = self.get(task.task_id)
        if delegate is None:
            return request
        return delegate.will_perform_redirection(response, request)

    def need_new_body_stream(self, task: SessionTask) -> BinaryIO | None:
        delegate = self.get(task.task_id)
        if delegate is None:
            return None
        return delegate.need_new_body_stream()

    def did_complete(self, task: SessionTask, error: Exception | None) -> None:
        """Entrega a conclusão ao delegate e só então o remove do registro."""
        delegate = self.get(task.task_id)
        if delegate is not None:
            delegate.did_complete(error)
        self.evict(task.task_id)
        logger.debug(f"Tarefa {task.task_id} removida do registro")

    def did_become_invalid(
        self, session: TransportSession, error: Exception | None
    ) -> None:
        if self.on_session_invalid is not None:
            invoke_hook(self.on_session_invalid, error)

    # ------------------------------------------------------------------
    # Eventos de tarefas de dados e upload
    # ------------------------------------------------------------------

    def did_receive_response(
        self, task: SessionTask, response: httpx.Response
    ) -> ResponseDisposition:
        match self.get(task.task_id):
            case DataTaskDelegate() as delegate:
                return delegate.did_receive_response(response)
            case _:
                return ResponseDisposition.ALLOW

    def did_receive_data(self, task: SessionTask, data: bytes) -> None:
        match self.get(task.task_id):
            case DataTaskDelegate() as delegate:
                delegate.did_receive_data(data)
            case _:
                pass

    def will_cache_response(
        self, task: SessionTask, proposed: CachedResponse
    ) -> CachedResponse | None:
        match self.get(task.task_id):
            case DataTaskDelegate() as delegate:
                return delegate.will_cache_response(proposed)
            case _:
                return proposed

    def did_send_body_data(
        self,
        task: SessionTask,
        bytes_sent: int,
        total_bytes_sent: int,
        total_bytes_expected: int | None,
    ) -> None:
        match self.get(task.task_id):
            case UploadTaskDelegate() as delegate:
                delegate.did_send_body_data(
                    bytes_sent, total_bytes_sent, total_bytes_expected
                )
            case _:
                pass

    def did_become_download_task(
        self, task: SessionTask, download_task: SessionTask
    ) -> None:
        """
        A tarefa de dados virou download.

        O novo id ganha o delegate fornecido pelo gancho do chamador (ou um
        ``DownloadTaskDelegate`` sem destino) e a tarefa de dados é concluída
        sem erro e removida, pois não receberá mais eventos.
        """
        match self.get(task.task_id):
            case DataTaskDelegate() as delegate:
                download = delegate.did_become_download_task(download_task)
                if download is None:
                    download = DownloadTaskDelegate(
                        download_task,
                        self.callback_executor,
                        credential=delegate.credential,
                    )
                self.register(download)
                download.resume()
                delegate.complete(None)
                self.evict(task.task_id)
                logger.debug(
                    f"Tarefa {task.task_id} convertida no download {download_task.task_id}"
                )
            case _:
                pass

    # ------------------------------------------------------------------
    # Eventos de download
    # ------------------------------------------------------------------

    def did_resume_at_offset(
        self, task: SessionTask, offset: int, expected_total_bytes: int | None
    ) -> None:
        match self.get(task.task_id):
            case DownloadTaskDelegate() as delegate:
                delegate.did_resume_at_offset(offset, expected_total_bytes)
            case _:
                pass

    def did_write_data(
        self,
        task: SessionTask,
        bytes_written: int,
        total_bytes_written: int,
        total_bytes_expected: int | None,
    ) -> None:
        match self.get(task.task_id):
            case DownloadTaskDelegate() as delegate:
                delegate.did_write_data(
                    bytes_written, total_bytes_written, total_bytes_expected
                )
            case _:
                pass

    def did_finish_downloading_to(self, task: SessionTask, location: Path) -> None:
        match self.get(task.task_id):
            case DownloadTaskDelegate() as delegate:
                delegate.did_finish_downloading_to(location)
            case _:
                pass
