"""
Delegates: a máquina de estados de cada tarefa.

Cada variante guarda o estado de uma tarefa do transporte (progresso,
bytes acumulados, credencial e erro terminal) e trata os eventos que o
roteador encaminha. Os ganchos do chamador ficam numa tabela ``TaskHooks``;
quando um gancho não está definido vale o comportamento padrão documentado
em cada método.
"""

import shutil
import threading
from collections.abc import Callable
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO

import httpx

from ..errors import DownloadMoveError, ParameterEncodingError, TaskCancelledError
from ..http.session import SessionTask
from ..models import (
    AuthChallenge,
    AuthenticationMethod,
    CachedResponse,
    ChallengeDisposition,
    Credential,
    Progress,
    Request,
    ResponseDisposition,
)
from ..utils import get_logger

logger = get_logger(__name__)

DestinationResolver = Callable[[Path, httpx.Response | None], Path | str]


class DelegateState(Enum):
    """Estados do delegate; suspensão é um sub-estado de RUNNING."""

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"


ChallengeHook = Callable[[AuthChallenge], tuple[ChallengeDisposition, Credential | None]]
TransferHook = Callable[[int, int, int | None], None]


@dataclass
class TaskHooks:
    """Ganchos opcionais do chamador, cada um definido de forma independente."""

    on_challenge: ChallengeHook | None = None
    on_redirect: Callable[[httpx.Response, Request], Request | None] | None = None
    on_body_stream: Callable[[], BinaryIO | None] | None = None
    on_response: Callable[[httpx.Response], ResponseDisposition] | None = None
    on_data: Callable[[bytes], None] | None = None
    on_cache: Callable[[CachedResponse], CachedResponse | None] | None = None
    on_become_download: Callable[[SessionTask], "DownloadTaskDelegate | None"] | None = None
    on_progress: Callable[[Progress], None] | None = None
    on_upload_progress: TransferHook | None = None
    on_download_progress: TransferHook | None = None
    on_resume: Callable[[int, int | None], None] | None = None


def invoke_hook(hook: Callable[..., Any], *args: Any, default: Any = None) -> Any:
    """
    Chama um gancho do chamador sem deixar exceções chegarem ao transporte.

    Returns:
        O valor do gancho, ou ``default`` se ele levantar exceção
    """
    try:
        return hook(*args)
    except Exception:
        logger.exception(f"Erro no callback {getattr(hook, '__name__', hook)!r}")
        return default


class TaskDelegate:
    """
    Delegate da tarefa simples (sem corpo de resposta acumulado).

    Guarda progresso, credencial e erro terminal. Callbacks enfileirados com
    ``enqueue`` só são liberados para o executor quando a tarefa conclui.
    """

    def __init__(
        self,
        task: SessionTask,
        callback_executor: Executor,
        credential: Credential | None = None,
    ):
        self.task = task
        self.hooks = TaskHooks()
        self.progress = Progress()
        self.credential = credential
        self.error: Exception | None = None
        self.encoding_error: ParameterEncodingError | None = None
        self.suspended = False

        self._state = DelegateState.CREATED
        self._executor = callback_executor
        self._queue: list[Callable[[], None]] = []
        self._lock = threading.Lock()
        self._finished = threading.Event()

    @property
    def task_id(self) -> int:
        return self.task.task_id

    @property
    def state(self) -> DelegateState:
        with self._lock:
            return self._state

    @property
    def completed(self) -> bool:
        return self._finished.is_set()

    @property
    def data(self) -> bytes | None:
        """Bytes acumulados; tarefas simples não acumulam nada."""
        return None

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    def resume(self) -> None:
        with self._lock:
            if self._state is DelegateState.COMPLETED:
                return
            self._state = DelegateState.RUNNING
            self.suspended = False
        self.task.resume()

    def suspend(self) -> None:
        with self._lock:
            if self._state is not DelegateState.RUNNING:
                return
            self.suspended = True
        self.task.suspend()

    def cancel(self) -> None:
        """Cancela e conclui imediatamente com ``TaskCancelledError``."""
        self.task.cancel()
        self.complete(TaskCancelledError(self.task_id))

    def complete(self, error: Exception | None) -> bool:
        """
        Leva o delegate ao estado terminal e libera a fila de callbacks.

        Apenas a primeira chamada tem efeito.

        Returns:
            True se esta chamada concluiu o delegate
        """
        with self._lock:
            if self._state is DelegateState.COMPLETED:
                return False
            self._state = DelegateState.COMPLETED
            self.suspended = False
            self.error = error
            queued, self._queue = self._queue, []
            self._finished.set()

        for callback in queued:
            self._executor.submit(callback)
        return True

    def enqueue(self, callback: Callable[[], None]) -> None:
        """Agenda ``callback`` para depois da conclusão da tarefa."""
        with self._lock:
            if self._state is not DelegateState.COMPLETED:
                self._queue.append(callback)
                return
        self._executor.submit(callback)

    def wait(self, timeout: float | None = None) -> bool:
        """Bloqueia até a conclusão; devolve False se o tempo esgotar."""
        return self._finished.wait(timeout)

    # ------------------------------------------------------------------
    # Eventos comuns a todas as variantes
    # ------------------------------------------------------------------

    def did_receive_challenge(
        self, challenge: AuthChallenge
    ) -> tuple[ChallengeDisposition, Credential | None]:
        """
        Decide um desafio de autenticação.

        Padrão: cancela se o desafio já falhou antes; em confiança de
        servidor aceita a credencial da tarefa ou a confiança apresentada;
        em Basic/Digest usa a credencial da tarefa, se houver, ou deixa o
        transporte decidir.
        """
        if self.hooks.on_challenge is not None:
            return invoke_hook(
                self.hooks.on_challenge,
                challenge,
                default=(ChallengeDisposition.CANCEL_AUTHENTICATION_CHALLENGE, None),
            )

        if challenge.previous_failure_count > 0:
            return ChallengeDisposition.CANCEL_AUTHENTICATION_CHALLENGE, None

        space = challenge.protection_space
        if space.authentication_method is AuthenticationMethod.SERVER_TRUST:
            credential = self.credential or Credential.for_trust(space.server_trust)
            if credential is not None:
                return ChallengeDisposition.USE_CREDENTIAL, credential
            return ChallengeDisposition.PERFORM_DEFAULT_HANDLING, None

        if self.credential is not None:
            return ChallengeDisposition.USE_CREDENTIAL, self.credential
        return ChallengeDisposition.PERFORM_DEFAULT_HANDLING, None

    def will_perform_redirection(
        self, response: httpx.Response, request: Request
    ) -> Request | None:
        """Padrão: segue a requisição proposta."""
        if self.hooks.on_redirect is None:
            return request
        return invoke_hook(self.hooks.on_redirect, response, request, default=request)

    def need_new_body_stream(self) -> BinaryIO | None:
        if self.hooks.on_body_stream is None:
            return None
        return invoke_hook(self.hooks.on_body_stream)

    def did_complete(self, error: Exception | None) -> None:
        self.complete(error)

    def _report_progress(self) -> None:
        if self.hooks.on_progress is not None:
            invoke_hook(self.hooks.on_progress, self.progress)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} task={self.task_id} state={self.state.value}>"


class DataTaskDelegate(TaskDelegate):
    """Acumula em memória o corpo da resposta."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._buffer: bytearray | None = None

    @property
    def data(self) -> bytes | None:
        """Corpo recebido até agora, ou None se nenhum bloco chegou."""
        with self._lock:
            return bytes(self._buffer) if self._buffer is not None else None

    def did_receive_response(self, response: httpx.Response) -> ResponseDisposition:
        """Registra o tamanho esperado; padrão: ``ALLOW``."""
        expected = self.task.count_of_bytes_expected_to_receive
        if expected is not None:
            self.progress.update(self.progress.completed_unit_count, expected)

        if self.hooks.on_response is None:
            return ResponseDisposition.ALLOW
        return invoke_hook(
            self.hooks.on_response, response, default=ResponseDisposition.ALLOW
        )

    def did_receive_data(self, data: bytes) -> None:
        with self._lock:
            # Tarefa já cancelada: dados atrasados são ignorados
            if self._state is DelegateState.COMPLETED:
                return
            if self._buffer is None:
                self._buffer = bytearray()
            self._buffer.extend(data)
            received = len(self._buffer)

        self.progress.update(received, self.task.count_of_bytes_expected_to_receive)
        if self.hooks.on_data is not None:
            invoke_hook(self.hooks.on_data, data)
        self._report_progress()

    def will_cache_response(self, proposed: CachedResponse) -> CachedResponse | None:
        """Padrão: guarda a resposta proposta."""
        if self.hooks.on_cache is None:
            return proposed
        return invoke_hook(self.hooks.on_cache, proposed)

    def did_become_download_task(
        self, download_task: SessionTask
    ) -> "DownloadTaskDelegate | None":
        """Delegate que assume o novo download, se o chamador fornecer um."""
        if self.hooks.on_become_download is None:
            return None
        return invoke_hook(self.hooks.on_become_download, download_task)


class UploadTaskDelegate(DataTaskDelegate):
    """Delegate de dados com um segundo progresso: o do corpo enviado."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.upload_progress = Progress()

    def did_send_body_data(
        self, bytes_sent: int, total_bytes_sent: int, total_bytes_expected: int | None
    ) -> None:
        self.upload_progress.update(total_bytes_sent, total_bytes_expected)
        if self.hooks.on_upload_progress is not None:
            invoke_hook(
                self.hooks.on_upload_progress,
                bytes_sent,
                total_bytes_sent,
                total_bytes_expected,
            )


class DownloadTaskDelegate(TaskDelegate):
    """
    Delegate de download: nenhum buffer em memória.

    Ao fim da transferência chama o ``destination`` do chamador com
    (arquivo temporário, resposta) e move o arquivo para o caminho devolvido.
    """

    def __init__(
        self,
        task: SessionTask,
        callback_executor: Executor,
        credential: Credential | None = None,
        destination: DestinationResolver | None = None,
    ):
        super().__init__(task, callback_executor, credential)
        self.destination = destination
        self.destination_path: Path | None = None
        self.resume_data: bytes | None = None
        self._move_error: DownloadMoveError | None = None

    def cancel(self) -> None:
        """
        Cancela guardando o resume data, quando possível.

        A conclusão chega depois, pelo evento de conclusão do transporte.
        """
        self.task.cancel_by_producing_resume_data(self._store_resume_data)

    def _store_resume_data(self, data: bytes | None) -> None:
        # Um segundo cancelamento devolve None; mantém o primeiro resultado
        if data is not None:
            self.resume_data = data

    def did_resume_at_offset(self, offset: int, expected_total_bytes: int | None) -> None:
        self.progress.reset(offset, expected_total_bytes)
        if self.hooks.on_resume is not None:
            invoke_hook(self.hooks.on_resume, offset, expected_total_bytes)

    def did_write_data(
        self,
        bytes_written: int,
        total_bytes_written: int,
        total_bytes_expected: int | None,
    ) -> None:
        self.progress.update(total_bytes_written, total_bytes_expected)
        if self.hooks.on_download_progress is not None:
            invoke_hook(
                self.hooks.on_download_progress,
                bytes_written,
                total_bytes_written,
                total_bytes_expected,
            )
        self._report_progress()

    def did_finish_downloading_to(self, location: Path) -> None:
        """Resolve o destino final e move o arquivo temporário para lá."""
        if self.destination is None:
            return

        try:
            target = Path(self.destination(location, self.task.response))
        except Exception as e:
            logger.exception(f"Erro ao resolver o destino da tarefa {self.task_id}")
            self._move_error = DownloadMoveError(f"Destino não resolvido: {e}")
            self._move_error.__cause__ = e
            return

        try:
            shutil.move(str(location), str(target))
        except OSError as e:
            logger.warning(
                f"Falha ao mover download da tarefa {self.task_id} para {target}: {e}"
            )
            self._move_error = DownloadMoveError(
                f"Falha ao mover {location} para {target}: {e}"
            )
            self._move_error.__cause__ = e
            return

        self.destination_path = target
        logger.debug(f"Download da tarefa {self.task_id} salvo em {target}")

    def did_complete(self, error: Exception | None) -> None:
        self.complete(error if error is not None else self._move_error)
