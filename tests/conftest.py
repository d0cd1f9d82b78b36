"""Pytest configuration and fixtures for tarefa_http tests."""

import threading
import time
from collections.abc import Callable
from concurrent.futures import Executor, Future
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from tarefa_http.core import transforms
from tarefa_http.core.config import SessionConfig
from tarefa_http.core.manager import SessionManager
from tarefa_http.core.task import Task, TaskResponse
from tarefa_http.core.transforms import ResponseTransform
from tarefa_http.http.session import SessionTask, TaskKind
from tarefa_http.models import Request

BASE_URL = "https://api.example.com"
WAIT_TIMEOUT = 5.0

Handler = Callable[[httpx.Request], httpx.Response]


class MockServer:
    """
    In-memory HTTP server for httpx.MockTransport.

    Routes are matched by path only; every request received is recorded.
    """

    def __init__(self):
        self.routes: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def route(self, path: str, handler: Handler | None = None, **response_kwargs):
        """Register a handler, or a fixed response built from kwargs."""
        if handler is None:

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(**{"status_code": 200, **response_kwargs})

        self.routes[path] = handler
        return handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, content=b"not found")
        return handler(request)

    def requests_to(self, path: str) -> list[httpx.Request]:
        with self._lock:
            return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def server() -> MockServer:
    return MockServer()


@pytest.fixture
def transport(server: MockServer) -> httpx.MockTransport:
    return httpx.MockTransport(server)


@pytest.fixture
def config(tmp_path: Path) -> SessionConfig:
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()
    return SessionConfig(max_workers=4, temporary_directory=temp_dir)


@pytest.fixture
def manager(config: SessionConfig, transport: httpx.MockTransport):
    manager = SessionManager(config, transport=transport)
    yield manager
    manager.close()


@pytest.fixture
def make_manager(transport: httpx.MockTransport, tmp_path: Path):
    """Factory for managers with custom configuration; all closed at teardown."""
    managers: list[SessionManager] = []

    def factory(**options) -> SessionManager:
        options.setdefault("temporary_directory", tmp_path)
        manager = SessionManager(SessionConfig(**options), transport=transport)
        managers.append(manager)
        return manager

    yield factory
    for manager in managers:
        manager.close()


def wait_response(
    task: Task,
    transform: ResponseTransform | None = None,
    timeout: float = WAIT_TIMEOUT,
) -> TaskResponse:
    """Block until the task delivers its response callback."""
    done = threading.Event()
    results: list[TaskResponse] = []

    def callback(result: TaskResponse) -> None:
        results.append(result)
        done.set()

    task.response_with(transform or transforms.raw(), callback)
    assert done.wait(timeout), f"task {task.task_id} did not complete"
    return results[0]


def wait_until(predicate: Callable[[], bool], timeout: float = WAIT_TIMEOUT) -> bool:
    """Poll ``predicate`` until it holds or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class InlineExecutor(Executor):
    """Executor that runs callbacks synchronously on the calling thread."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def fake_task():
    """Factory for SessionTask doubles that never touch the network."""

    def factory(task_id: int = 1, kind: TaskKind = TaskKind.DATA) -> MagicMock:
        task = MagicMock(spec=SessionTask)
        task.task_id = task_id
        task.kind = kind
        task.response = None
        task.current_request = Request.build(f"{BASE_URL}/tasks/{task_id}")
        task.count_of_bytes_expected_to_receive = None
        return task

    return factory
