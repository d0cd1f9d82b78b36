"""
Sessão de transporte sobre httpx.

Cada tarefa roda inteira numa thread do pool, de modo que os eventos de uma
mesma tarefa chegam ao receptor na ordem em que acontecem:
desafios/redirecionamentos → resposta → dados/progresso → conclusão.
Tarefas diferentes rodam em paralelo e seus eventos não têm ordem entre si.
"""

import itertools
import os
import re
import tempfile
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

import httpx

from ..errors import TarefaHTTPError, TaskCancelledError, TransportError
from ..models import (
    AuthChallenge,
    AuthenticationMethod,
    CachedResponse,
    CachePolicy,
    ChallengeDisposition,
    Credential,
    HTTPMethod,
    ProtectionSpace,
    Request,
    ResponseDisposition,
)
from ..utils import get_logger
from .cache import ResponseCache
from .events import SessionEvents
from .resume import ResumeData

if TYPE_CHECKING:
    from ..core.config import SessionConfig

logger = get_logger(__name__)

UploadBody = bytes | Path | BinaryIO
ResumeDataCallback = Callable[[bytes | None], None]

MAX_AUTH_ATTEMPTS = 5
_REALM = re.compile(r'realm="([^"]*)"', re.IGNORECASE)


class TaskState(Enum):
    """Estado da tarefa no transporte."""

    SUSPENDED = "suspended"
    RUNNING = "running"
    CANCELING = "canceling"
    COMPLETED = "completed"


class TaskKind(Enum):
    """Variantes de tarefa que o transporte sabe executar."""

    PLAIN = "plain"
    DATA = "data"
    DOWNLOAD = "download"
    UPLOAD = "upload"


class _Cancelled(Exception):
    """Interrompe a thread de trabalho de uma tarefa cancelada."""


class _Converted(Exception):
    """A tarefa de dados virou download; nenhum evento a mais para ela."""


class SessionTask:
    """
    Unidade de trabalho do transporte, identificada por um id numérico.

    Nasce suspensa; ``resume()`` agenda a execução no pool da sessão.
    """

    def __init__(
        self,
        session: "TransportSession",
        task_id: int,
        kind: TaskKind,
        request: Request,
        upload_body: UploadBody | None = None,
        resume: ResumeData | None = None,
    ):
        self.session = session
        self.task_id = task_id
        self.kind = kind
        self.original_request = request
        self.current_request = request
        self.response: httpx.Response | None = None
        self.upload_body = upload_body
        self.resume_from = resume

        self.count_of_bytes_received = 0
        self.count_of_bytes_expected_to_receive: int | None = None
        self.count_of_bytes_sent = 0

        self._state = TaskState.SUSPENDED
        self._lock = threading.Lock()
        self._runnable = threading.Event()
        self._cancelled = threading.Event()
        self._started = False
        self._resume_data_callback: ResumeDataCallback | None = None
        self._download_path: Path | None = None
        self._upload_attempts = 0

    @property
    def state(self) -> TaskState:
        with self._lock:
            return self._state

    def resume(self) -> None:
        """Inicia a tarefa, ou a retoma se estiver suspensa."""
        with self._lock:
            if self._state is not TaskState.SUSPENDED:
                return
            self._state = TaskState.RUNNING
            self._runnable.set()
            start = not self._started
            self._started = True

        if start:
            self.session._start(self)

    def suspend(self) -> None:
        """Pausa a tarefa entre dois blocos de dados."""
        with self._lock:
            if self._state is TaskState.RUNNING:
                self._state = TaskState.SUSPENDED
                self._runnable.clear()

    def cancel(self) -> None:
        self._request_cancel(None)

    def cancel_by_producing_resume_data(self, callback: ResumeDataCallback) -> None:
        """
        Cancela um download guardando o que já foi baixado.

        ``callback`` recebe o resume data (ou None se não foi possível
        produzi-lo) antes do evento de conclusão da tarefa.
        """
        if self.kind is not TaskKind.DOWNLOAD:
            raise TypeError(f"Tarefa {self.task_id} não é um download")
        if not self._request_cancel(callback):
            callback(None)

    def _request_cancel(self, callback: ResumeDataCallback | None) -> bool:
        with self._lock:
            if self._state in (TaskState.CANCELING, TaskState.COMPLETED):
                return False
            self._state = TaskState.CANCELING
            self._resume_data_callback = callback
            self._cancelled.set()
            self._runnable.set()
            start = not self._started
            self._started = True

        if start:
            self.session._start(self)
        return True

    def _adopt(self) -> None:
        """Marca como em execução uma tarefa criada dentro de outra."""
        with self._lock:
            self._state = TaskState.RUNNING
            self._started = True
            self._runnable.set()

    def _checkpoint(self) -> None:
        self._runnable.wait()
        if self._cancelled.is_set():
            raise _Cancelled()

    def _take_resume_data_callback(self) -> ResumeDataCallback | None:
        with self._lock:
            callback, self._resume_data_callback = self._resume_data_callback, None
            return callback

    def _mark_completed(self) -> None:
        with self._lock:
            self._state = TaskState.COMPLETED
            self._runnable.set()

    def __repr__(self) -> str:
        return f"<SessionTask id={self.task_id} kind={self.kind.value} state={self.state.value}>"


class TransportSession:
    """
    Executa tarefas HTTP num pool de threads e entrega seus eventos a um
    único receptor (``SessionEvents``).
    """

    def __init__(
        self,
        config: "SessionConfig",
        events: SessionEvents,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Args:
            config: Configuração compartilhada da sessão
            events: Receptor de todos os eventos das tarefas
            transport: Transporte httpx alternativo (ex.: httpx.MockTransport)
        """
        self.config = config
        self.events = events
        self.cache = ResponseCache()
        self.client = httpx.Client(
            headers=config.headers,
            timeout=config.timeout,
            verify=config.verify,
            transport=transport,
            follow_redirects=False,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="tarefa-http"
        )
        self._ids = itertools.count(1)
        self._tasks: dict[int, SessionTask] = {}
        self._lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------
    # Criação de tarefas
    # ------------------------------------------------------------------

    def create_task(self, request: Request) -> SessionTask:
        """Tarefa simples: o corpo da resposta é descartado."""
        return self._make_task(TaskKind.PLAIN, request)

    def create_data_task(self, request: Request) -> SessionTask:
        return self._make_task(TaskKind.DATA, request)

    def create_upload_task(self, request: Request, body: UploadBody) -> SessionTask:
        return self._make_task(TaskKind.UPLOAD, request, upload_body=body)

    def create_download_task(self, request: Request) -> SessionTask:
        return self._make_task(TaskKind.DOWNLOAD, request)

    def create_download_task_with_resume_data(self, data: bytes) -> SessionTask:
        """
        Download que continua de onde um cancelamento anterior parou.

        Raises:
            MalformedRequestError: Se ``data`` não for um resume data válido
        """
        resume = ResumeData.from_bytes(data)
        request = Request.build(resume.url, headers=resume.headers)
        return self._make_task(TaskKind.DOWNLOAD, request, resume=resume)

    def tasks(self) -> list[SessionTask]:
        """Tarefas criadas e ainda não concluídas."""
        with self._lock:
            return list(self._tasks.values())

    def _make_task(self, kind: TaskKind, request: Request, **kwargs) -> SessionTask:
        with self._lock:
            if self._closed:
                raise TransportError("Sessão encerrada; nenhuma tarefa nova é aceita")
            task = SessionTask(self, next(self._ids), kind, request, **kwargs)
            self._tasks[task.task_id] = task
        logger.debug(f"Tarefa {task.task_id} criada ({kind.value}) para {request.url}")
        return task

    def _start(self, task: SessionTask) -> None:
        self._executor.submit(self._run, task)

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------

    def _run(self, task: SessionTask) -> None:
        self._execute(task, lambda: self._transfer(task))

    def _execute(self, task: SessionTask, work: Callable[[], None]) -> None:
        """Roda ``work`` e garante exatamente um evento de conclusão."""
        error: Exception | None = None
        try:
            task._checkpoint()
            work()
        except _Converted:
            self._forget(task)
            return
        except _Cancelled:
            error = TaskCancelledError(task.task_id)
        except httpx.HTTPError as e:
            error = TransportError(f"{type(e).__name__}: {e}")
            error.__cause__ = e
        except TarefaHTTPError as e:
            error = e
        except OSError as e:
            error = TransportError(f"Erro de E/S: {e}")
            error.__cause__ = e
        except Exception as e:
            logger.exception(f"Erro inesperado na tarefa {task.task_id}")
            error = e

        resume_data = None
        callback = task._take_resume_data_callback()
        if callback is not None and isinstance(error, TaskCancelledError):
            resume_data = self._produce_resume_data(task)
        if resume_data is None:
            self._discard_download(task)
        if callback is not None:
            callback(resume_data)

        self._forget(task)
        if error is not None:
            logger.debug(f"Tarefa {task.task_id} concluída com erro: {error}")
        self.events.did_complete(task, error)

    def _forget(self, task: SessionTask) -> None:
        task._mark_completed()
        with self._lock:
            self._tasks.pop(task.task_id, None)

    def _transfer(self, task: SessionTask) -> None:
        request = task.current_request
        if task.resume_from is not None and task.resume_from.has_partial_file():
            request = request.copy()
            request.headers.update(task.resume_from.range_headers())

        cached = self._cached_response(task, request)
        if cached is not None:
            response = cached.to_response(self.client.build_request(request.method.value, request.url))
            task.response = response
            self._receive_data(task, response, from_cache=True)
            return

        self._evaluate_server_trust(task, request)
        response = self._send(task, request)
        task.response = response
        try:
            match task.kind:
                case TaskKind.DATA | TaskKind.UPLOAD:
                    self._receive_data(task, response)
                case TaskKind.DOWNLOAD:
                    self._receive_file(task, response)
                case TaskKind.PLAIN:
                    for _ in response.iter_bytes(self.config.chunk_size):
                        task._checkpoint()
        finally:
            response.close()

    def _send(self, task: SessionTask, request: Request) -> httpx.Response:
        """Envia a requisição tratando desafios de autenticação e redirecionamentos.

        A resposta aberta é fechada antes de qualquer exceção sair daqui.
        """
        auth: httpx.Auth | None = None
        auth_attempts = 0
        redirects = 0

        while True:
            task._checkpoint()
            http_request = self._build_request(task, request)
            response = self.client.send(
                http_request, stream=True, auth=auth, follow_redirects=False
            )

            try:
                if (
                    response.status_code == 401
                    and "WWW-Authenticate" in response.headers
                    and auth_attempts < MAX_AUTH_ATTEMPTS
                ):
                    challenge = self._auth_challenge(request, response, auth_attempts)
                    next_auth = self._resolve_challenge(task, challenge)
                    if next_auth is None:
                        return response
                    response.close()
                    auth = next_auth
                    auth_attempts += 1
                    continue

                if response.next_request is None:
                    return response

                if redirects >= self.config.max_redirects:
                    raise httpx.TooManyRedirects(
                        "Exceeded maximum allowed redirects.", request=http_request
                    )
                proposed = Request.from_httpx(response.next_request)
                chosen = self.events.will_perform_redirection(task, response, proposed)
                if chosen is None:
                    return response
            except BaseException:
                response.close()
                raise

            response.close()
            redirects += 1
            request = chosen
            task.current_request = chosen

    def _build_request(self, task: SessionTask, request: Request) -> httpx.Request:
        headers = httpx.Headers(request.headers)
        content = request.body
        if task.kind is TaskKind.UPLOAD and request.method is not HTTPMethod.GET:
            content, total = self._upload_content(task)
            if total is not None:
                headers["Content-Length"] = str(total)
        return self.client.build_request(
            request.method.value, request.url, headers=headers, content=content
        )

    # ------------------------------------------------------------------
    # Autenticação
    # ------------------------------------------------------------------

    def _evaluate_server_trust(self, task: SessionTask, request: Request) -> None:
        if not self.config.evaluate_server_trust or request.url.scheme != "https":
            return

        space = ProtectionSpace(
            host=request.url.host,
            port=request.url.port,
            scheme="https",
            authentication_method=AuthenticationMethod.SERVER_TRUST,
            server_trust=self.config.verify,
        )
        disposition, _ = self.events.did_receive_challenge(task, AuthChallenge(space))
        if disposition in (
            ChallengeDisposition.CANCEL_AUTHENTICATION_CHALLENGE,
            ChallengeDisposition.REJECT_PROTECTION_SPACE,
        ):
            raise _Cancelled()

    def _auth_challenge(
        self, request: Request, response: httpx.Response, failures: int
    ) -> AuthChallenge:
        header = response.headers["WWW-Authenticate"]
        scheme = header.split(" ", 1)[0].lower()
        method = (
            AuthenticationMethod.HTTP_DIGEST
            if scheme == "digest"
            else AuthenticationMethod.HTTP_BASIC
        )
        realm = _REALM.search(header)
        space = ProtectionSpace(
            host=request.url.host,
            port=request.url.port,
            scheme=request.url.scheme,
            authentication_method=method,
            realm=realm.group(1) if realm else None,
        )
        return AuthChallenge(
            protection_space=space,
            previous_failure_count=failures,
            proposed_credential=self.config.credential_for(request.url.host),
        )

    def _resolve_challenge(
        self, task: SessionTask, challenge: AuthChallenge
    ) -> httpx.Auth | None:
        """Converte a decisão do receptor no ``httpx.Auth`` da próxima tentativa."""
        disposition, credential = self.events.did_receive_challenge(task, challenge)

        match disposition:
            case ChallengeDisposition.CANCEL_AUTHENTICATION_CHALLENGE:
                raise _Cancelled()
            case ChallengeDisposition.USE_CREDENTIAL:
                pass
            case ChallengeDisposition.PERFORM_DEFAULT_HANDLING:
                if challenge.previous_failure_count > 0:
                    return None
                credential = challenge.proposed_credential
            case _:
                return None

        if credential is None or not credential.has_password:
            return None
        return _auth_for(challenge.protection_space.authentication_method, credential)

    # ------------------------------------------------------------------
    # Corpo da requisição (uploads)
    # ------------------------------------------------------------------

    def _upload_content(self, task: SessionTask) -> tuple[Iterator[bytes], int | None]:
        source = task.upload_body
        if task._upload_attempts and not isinstance(source, (bytes, bytearray, Path)):
            # Streams só podem ser lidos uma vez
            source = self.events.need_new_body_stream(task)
            if source is None:
                raise TransportError(
                    f"Tarefa {task.task_id}: corpo em stream não pode ser reenviado"
                )
        task._upload_attempts += 1

        chunk_size = self.config.chunk_size
        match source:
            case bytes() | bytearray():
                chunks = _iter_buffer(bytes(source), chunk_size)
                total = len(source)
            case Path():
                chunks = _iter_path(source, chunk_size)
                total = source.stat().st_size
            case _:
                chunks = _iter_stream(source, chunk_size)
                total = None
        return self._body_chunks(task, chunks, total), total

    def _body_chunks(
        self, task: SessionTask, chunks: Iterator[bytes], total: int | None
    ) -> Iterator[bytes]:
        sent = 0
        for chunk in chunks:
            task._checkpoint()
            sent += len(chunk)
            task.count_of_bytes_sent = sent
            self.events.did_send_body_data(task, len(chunk), sent, total)
            yield chunk

    # ------------------------------------------------------------------
    # Corpo da resposta
    # ------------------------------------------------------------------

    def _receive_data(
        self, task: SessionTask, response: httpx.Response, from_cache: bool = False
    ) -> None:
        task.count_of_bytes_expected_to_receive = _expected_length(response)

        disposition = self.events.did_receive_response(task, response)
        if disposition is ResponseDisposition.CANCEL:
            raise _Cancelled()
        if disposition is ResponseDisposition.BECOME_DOWNLOAD:
            self._become_download(task, response)
            raise _Converted()

        buffer = None
        if (
            not from_cache
            and task.kind is TaskKind.DATA
            and self.config.cache_policy is not CachePolicy.RELOAD_IGNORING_CACHE
            and ResponseCache.is_cacheable(response.request, response)
        ):
            buffer = bytearray()

        for chunk in response.iter_bytes(self.config.chunk_size):
            task._checkpoint()
            task.count_of_bytes_received += len(chunk)
            if buffer is not None:
                buffer.extend(chunk)
            self.events.did_receive_data(task, chunk)

        if buffer is not None:
            proposed = CachedResponse.from_response(response, bytes(buffer))
            stored = self.events.will_cache_response(task, proposed)
            if stored is not None:
                self.cache.store(response.request.method, stored)

    def _become_download(self, task: SessionTask, response: httpx.Response) -> None:
        download = self._make_task(TaskKind.DOWNLOAD, task.current_request)
        download.response = response
        download._adopt()
        self.events.did_become_download_task(task, download)
        self._execute(download, lambda: self._receive_file(download, response))

    def _receive_file(self, task: SessionTask, response: httpx.Response) -> None:
        resume = task.resume_from
        offset = 0
        if resume is not None and response.status_code == 206 and resume.has_partial_file():
            path = Path(resume.temporary_path)
            offset = resume.bytes_received
            mode = "ab"
        else:
            if resume is not None:
                Path(resume.temporary_path).unlink(missing_ok=True)
            path = self._temporary_file()
            mode = "wb"
        task._download_path = path

        length = _expected_length(response)
        expected = offset + length if length is not None else None
        task.count_of_bytes_expected_to_receive = expected
        if resume is not None:
            self.events.did_resume_at_offset(task, offset, expected)

        written = offset
        with open(path, mode) as fh:
            for chunk in response.iter_bytes(self.config.chunk_size):
                task._checkpoint()
                fh.write(chunk)
                written += len(chunk)
                task.count_of_bytes_received = written
                self.events.did_write_data(task, len(chunk), written, expected)

        self.events.did_finish_downloading_to(task, path)
        # O arquivo temporário só vive até o fim do callback
        path.unlink(missing_ok=True)

    def _temporary_file(self) -> Path:
        fd, name = tempfile.mkstemp(
            prefix="tarefa-http-", suffix=".tmp", dir=self.config.temporary_directory
        )
        os.close(fd)
        return Path(name)

    def _produce_resume_data(self, task: SessionTask) -> bytes | None:
        path = task._download_path
        request = task.current_request
        if (
            task.kind is not TaskKind.DOWNLOAD
            or path is None
            or not path.is_file()
            or request.method is not HTTPMethod.GET
            or task.count_of_bytes_received == 0
        ):
            return None

        headers = {
            name: value
            for name, value in request.headers.items()
            if name.lower() not in ("range", "if-range")
        }
        response_headers = task.response.headers if task.response is not None else {}
        resume = ResumeData(
            url=str(request.url),
            temporary_path=str(path),
            bytes_received=task.count_of_bytes_received,
            headers=headers,
            etag=response_headers.get("ETag"),
            last_modified=response_headers.get("Last-Modified"),
        )
        logger.debug(f"Resume data produzido para tarefa {task.task_id}: {resume}")
        return resume.to_bytes()

    def _discard_download(self, task: SessionTask) -> None:
        if task._download_path is not None:
            task._download_path.unlink(missing_ok=True)

    def _cached_response(
        self, task: SessionTask, request: Request
    ) -> CachedResponse | None:
        if (
            self.config.cache_policy is not CachePolicy.RETURN_CACHE_DATA_ELSE_LOAD
            or task.kind is not TaskKind.DATA
            or request.method is not HTTPMethod.GET
        ):
            return None
        return self.cache.get(request.method.value, str(request.url))

    # ------------------------------------------------------------------
    # Encerramento
    # ------------------------------------------------------------------

    def close(self, wait: bool = True) -> None:
        """Cancela as tarefas pendentes, encerra o pool e o cliente httpx."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._tasks.values())

        for task in pending:
            task.cancel()

        self._executor.shutdown(wait=wait)
        self.client.close()
        logger.debug(f"Sessão encerrada ({len(pending)} tarefas canceladas)")
        self.events.did_become_invalid(self, None)

    @property
    def closed(self) -> bool:
        return self._closed


def _auth_for(method: AuthenticationMethod, credential: Credential) -> httpx.Auth:
    if method is AuthenticationMethod.HTTP_DIGEST:
        return httpx.DigestAuth(credential.user, credential.password)
    return httpx.BasicAuth(credential.user, credential.password)


def _expected_length(response: httpx.Response) -> int | None:
    try:
        length = int(response.headers.get("Content-Length", ""))
    except ValueError:
        return None
    return length if length >= 0 else None


def _iter_buffer(data: bytes, chunk_size: int) -> Iterator[bytes]:
    for start in range(0, len(data), chunk_size):
        yield data[start : start + chunk_size]


def _iter_path(path: Path, chunk_size: int) -> Iterator[bytes]:
    with open(path, "rb") as fh:
        yield from _iter_stream(fh, chunk_size)


def _iter_stream(stream: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    while chunk := stream.read(chunk_size):
        yield chunk
