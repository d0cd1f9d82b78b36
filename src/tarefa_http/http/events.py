"""Interface dos eventos que o transporte entrega por tarefa."""

from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Protocol

import httpx

from ..models import (
    AuthChallenge,
    CachedResponse,
    ChallengeDisposition,
    Credential,
    Request,
    ResponseDisposition,
)

if TYPE_CHECKING:
    from .session import SessionTask, TransportSession


class SessionEvents(Protocol):
    """
    Receptor único dos callbacks do transporte.

    Todos os métodos são chamados na thread de trabalho da tarefa, na ordem
    em que o transporte os produz. Os que devolvem valor são ganchos de
    decisão síncronos.
    """

    def did_receive_response(
        self, task: "SessionTask", response: httpx.Response
    ) -> ResponseDisposition: ...

    def did_become_download_task(
        self, task: "SessionTask", download_task: "SessionTask"
    ) -> None: ...

    def did_receive_data(self, task: "SessionTask", data: bytes) -> None: ...

    def will_cache_response(
        self, task: "SessionTask", proposed: CachedResponse
    ) -> CachedResponse | None: ...

    def will_perform_redirection(
        self, task: "SessionTask", response: httpx.Response, request: Request
    ) -> Request | None: ...

    def need_new_body_stream(self, task: "SessionTask") -> BinaryIO | None: ...

    def did_send_body_data(
        self,
        task: "SessionTask",
        bytes_sent: int,
        total_bytes_sent: int,
        total_bytes_expected: int | None,
    ) -> None: ...

    def did_resume_at_offset(
        self, task: "SessionTask", offset: int, expected_total_bytes: int | None
    ) -> None: ...

    def did_finish_downloading_to(self, task: "SessionTask", location: Path) -> None: ...

    def did_write_data(
        self,
        task: "SessionTask",
        bytes_written: int,
        total_bytes_written: int,
        total_bytes_expected: int | None,
    ) -> None: ...

    def did_receive_challenge(
        self, task: "SessionTask", challenge: AuthChallenge
    ) -> tuple[ChallengeDisposition, Credential | None]: ...

    def did_complete(self, task: "SessionTask", error: Exception | None) -> None: ...

    def did_become_invalid(
        self, session: "TransportSession", error: Exception | None
    ) -> None: ...
