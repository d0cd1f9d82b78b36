"""Tests for SessionManager end-to-end flows."""

import json
import threading

import httpx
import pytest

from conftest import BASE_URL, wait_response, wait_until
from tarefa_http.core import manager as manager_module
from tarefa_http.core import transforms
from tarefa_http.core.delegates import DataTaskDelegate, DelegateState, UploadTaskDelegate
from tarefa_http.core.endpoint import Endpoint
from tarefa_http.core.manager import SessionManager, default_manager
from tarefa_http.encoding import JSONEncoding
from tarefa_http.errors import (
    MalformedRequestError,
    ParameterEncodingError,
    ResponseSerializationError,
    TaskCancelledError,
    TransportError,
)
from tarefa_http.http.session import TaskKind
from tarefa_http.models import Credential, HTTPMethod, Request, ResponseDisposition


class TestTaskSubmission:
    """Test suite for SessionManager.task / send."""

    def test_get_with_parameters(self, manager, server):
        """Test GET with parameters in the query."""
        server.route("/busca", content=b"resultado")
        task = manager.task("GET", f"{BASE_URL}/busca", {"q": "diário", "page": 2})

        result = wait_response(task)

        assert result.error is None
        assert result.value == b"resultado"
        assert result.response.status_code == 200
        sent = server.requests_to("/busca")[0]
        assert sent.url.query == b"page=2&q=di%C3%A1rio"
        assert task.kind is TaskKind.DATA
        assert isinstance(task.delegate, DataTaskDelegate)

    def test_post_with_json(self, manager, server):
        """Test POST with a JSON body."""
        server.route("/itens", status_code=201)
        task = manager.task("post", f"{BASE_URL}/itens", {"nome": "x"}, JSONEncoding())

        wait_response(task)

        sent = server.requests_to("/itens")[0]
        assert sent.method == "POST"
        assert sent.headers["Content-Type"] == "application/json"
        assert json.loads(sent.content) == {"nome": "x"}

    def test_per_request_headers(self, manager, server):
        """Test request headers over the session defaults."""
        server.route("/h", content=b"")
        task = manager.task("GET", f"{BASE_URL}/h", headers={"X-Token": "abc"})
        wait_response(task)
        sent = server.requests_to("/h")[0]
        assert sent.headers["X-Token"] == "abc"
        assert sent.headers["User-Agent"].startswith("tarefa-http")

    @pytest.mark.parametrize(
        "method,url",
        [
            ("GET", "não é url"),
            ("GET", "ftp://example.com/arquivo"),
            ("GET", "/relativa"),
            ("PATCH", f"{BASE_URL}/a"),
        ],
    )
    def test_malformed_request_fails_fast(self, manager, method, url):
        """Test that an invalid request creates no task."""
        with pytest.raises(MalformedRequestError):
            manager.task(method, url)
        assert manager.active_task_count == 0

    def test_encoding_failure_is_fail_open(self, manager, server):
        """Test that an encoding failure does not prevent sending."""
        server.route("/itens", content=b"ok")
        task = manager.task("POST", f"{BASE_URL}/itens", {"bad": object()}, JSONEncoding())

        assert isinstance(task.encoding_error, ParameterEncodingError)
        result = wait_response(task)

        assert result.error is None
        assert isinstance(result.encoding_error, ParameterEncodingError)
        assert not result.ok
        sent = server.requests_to("/itens")[0]
        assert sent.content == b""
        assert "Content-Type" not in sent.headers

    def test_send_existing_request(self, manager, server):
        """Test sending a prebuilt request without encoding."""
        server.route("/pronta", content=b"ok")
        request = Request.build(f"{BASE_URL}/pronta?x=1", HTTPMethod.PUT, body=b"corpo")

        result = wait_response(manager.send(request))

        assert result.value == b"ok"
        sent = server.requests_to("/pronta")[0]
        assert sent.method == "PUT"
        assert sent.content == b"corpo"
        assert sent.url.query == b"x=1"

    def test_send_accepts_httpx_request(self, manager, server):
        """Test conversion from httpx.Request."""
        server.route("/a", content=b"ok")
        result = wait_response(manager.send(httpx.Request("DELETE", f"{BASE_URL}/a")))
        assert server.requests_to("/a")[0].method == "DELETE"
        assert result.error is None

    def test_plain_task_has_no_data(self, manager, server):
        """Test plain task completes without error or data."""
        server.route("/a", content=b"ignorado")
        task = manager.send(f"{BASE_URL}/a", discard_body=True)
        result = wait_response(task)
        assert result.error is None
        assert task.kind is TaskKind.PLAIN
        assert result.value is None
        assert result.response.status_code == 200

    def test_http_error_status_is_not_transport_error(self, manager):
        """Test that a 404 is a response, not an error."""
        result = wait_response(manager.send(f"{BASE_URL}/inexistente"))
        assert result.error is None
        assert result.response.status_code == 404

    def test_transport_error(self, manager, server):
        """Test transport error delivered to the callback."""

        def fail(request):
            raise httpx.ReadTimeout("lento", request=request)

        server.route("/lento", fail)
        result = wait_response(manager.send(f"{BASE_URL}/lento"))

        assert isinstance(result.error, TransportError)
        assert result.value is None
        assert result.transform_error is None


class TestRegistryLifecycle:
    """Delegates are registered on submission and evicted on completion."""

    def test_concurrent_tasks_register_distinct_delegates(self, make_manager, server):
        """Test N concurrent tasks and an empty registry at the end."""
        gate = threading.Event()

        def handler(request):
            gate.wait(5)
            return httpx.Response(200, content=request.url.query)

        server.route("/n", handler)
        manager = make_manager(max_workers=8)
        tasks = [manager.task("GET", f"{BASE_URL}/n", {"i": i}) for i in range(20)]

        assert len({task.task_id for task in tasks}) == 20
        assert manager.active_task_count == 20

        gate.set()
        results = [wait_response(task) for task in tasks]

        assert [r.value for r in results] == [f"i={i}".encode() for i in range(20)]
        assert wait_until(lambda: manager.active_task_count == 0)

    def test_start_immediately_disabled(self, make_manager, server):
        """Test that the task waits for resume when it does not start itself."""
        server.route("/a", content=b"ok")
        manager = make_manager(start_immediately=False)
        task = manager.send(f"{BASE_URL}/a")

        assert task.delegate_state is DelegateState.CREATED
        assert server.requests == []

        result = wait_response(task.resume())
        assert result.value == b"ok"

    def test_cancel_mid_stream(self, make_manager, server):
        """Test that cancelling stops the following chunks."""
        server.route("/a", content=b"aaaabbbbcccc")
        manager = make_manager(start_immediately=False, chunk_size=4)
        task = manager.send(f"{BASE_URL}/a")
        chunks = []

        def on_data(chunk):
            chunks.append(chunk)
            task.cancel()

        task.on_data(on_data).resume()
        result = wait_response(task)

        assert isinstance(result.error, TaskCancelledError)
        assert chunks == [b"aaaa"]
        assert task.data == b"aaaa"
        assert wait_until(lambda: manager.active_task_count == 0)

    def test_cancel_before_start(self, make_manager):
        """Test cancelling a task that never started."""
        manager = make_manager(start_immediately=False)
        task = manager.send(f"{BASE_URL}/a")
        task.cancel()

        result = wait_response(task)
        assert isinstance(result.error, TaskCancelledError)
        assert task.delegate_state is DelegateState.COMPLETED
        assert wait_until(lambda: manager.active_task_count == 0)

    def test_close_cancels_pending_tasks(self, config, transport):
        """Test that close completes pending tasks."""
        config.start_immediately = False
        manager = SessionManager(config, transport=transport)
        task = manager.send(f"{BASE_URL}/a")

        manager.close()

        assert isinstance(task.error, TaskCancelledError)
        with pytest.raises(TransportError):
            manager.send(f"{BASE_URL}/a")

    def test_context_manager(self, config, transport, server):
        """Test use as a context manager."""
        server.route("/a", content=b"ok")
        with SessionManager(config, transport=transport) as manager:
            result = wait_response(manager.send(f"{BASE_URL}/a"))
        assert result.value == b"ok"
        assert manager.session.closed


class TestTransforms:
    """Typed responses."""

    def test_json_response(self, manager, server):
        """Test decoded JSON."""
        server.route("/json", json={"a": [1, 2]})
        done = threading.Event()
        results = []
        manager.send(f"{BASE_URL}/json").json_response(
            lambda r: (results.append(r), done.set())
        )
        assert done.wait(5)
        assert results[0].value == {"a": [1, 2]}
        assert results[0].ok

    def test_invalid_json_is_transform_error(self, manager, server):
        """Test transform error kept apart from transport error."""
        server.route("/json", content=b"{quebrado")
        result = wait_response(manager.send(f"{BASE_URL}/json"), transforms.json_value())
        assert result.error is None
        assert isinstance(result.transform_error, ResponseSerializationError)
        assert result.value is None

    def test_string_response_uses_charset(self, manager, server):
        """Test charset declared by the response."""
        server.route(
            "/texto",
            content="ação".encode("latin-1"),
            headers={"Content-Type": "text/plain; charset=latin-1"},
        )
        result = wait_response(manager.send(f"{BASE_URL}/texto"), transforms.string())
        assert result.value == "ação"

    def test_empty_body_skips_transform(self, manager, server):
        """Test that the transform does not run without bytes."""
        server.route("/vazio", status_code=204)
        result = wait_response(manager.send(f"{BASE_URL}/vazio"), transforms.json_value())
        assert result.value is None
        assert result.transform_error is None

    def test_multiple_callbacks(self, manager, server):
        """Test several responses registered on the same task."""
        server.route("/json", json={"ok": True})
        task = manager.send(f"{BASE_URL}/json")
        raw = wait_response(task)
        decoded = wait_response(task, transforms.json_value())
        assert json.loads(raw.value) == {"ok": True}
        assert decoded.value == {"ok": True}


class TestHooks:
    """Caller hooks set through the Task builder."""

    def test_redirect_hook(self, make_manager, server):
        """Test redirect diverted by the hook."""
        server.route("/velho", status_code=301, headers={"Location": "/novo"})
        server.route("/outro", content=b"outro")
        manager = make_manager(start_immediately=False)
        task = manager.send(f"{BASE_URL}/velho").on_redirect(
            lambda response, request: Request.build(f"{BASE_URL}/outro")
        )

        result = wait_response(task.resume())

        assert result.value == b"outro"
        assert task.request.url.path == "/outro"
        assert server.requests_to("/novo") == []

    def test_authenticate(self, make_manager, server):
        """Test task credential used for the Basic challenge."""
        auth = httpx.BasicAuth("ana", "segredo")
        header = next(auth.auth_flow(httpx.Request("GET", BASE_URL))).headers["Authorization"]

        def handler(request):
            if request.headers.get("Authorization") == header:
                return httpx.Response(200, content=b"ok")
            return httpx.Response(401, headers={"WWW-Authenticate": 'Basic realm="x"'})

        server.route("/seguro", handler)
        manager = make_manager(start_immediately=False)

        ok = manager.send(f"{BASE_URL}/seguro").authenticate("ana", "segredo")
        wrong = manager.send(f"{BASE_URL}/seguro").authenticate(
            credential=Credential("ana", "errada")
        )
        ok_result = wait_response(ok.resume())
        wrong_result = wait_response(wrong.resume())

        assert ok_result.value == b"ok"
        # Segunda falha no mesmo desafio: o padrão cancela
        assert isinstance(wrong_result.error, TaskCancelledError)

    def test_response_disposition_cancel(self, make_manager, server):
        """Test cancellation decided on the response."""
        server.route("/a", content=b"abc")
        manager = make_manager(start_immediately=False)
        task = manager.send(f"{BASE_URL}/a").on_response(
            lambda response: ResponseDisposition.CANCEL
        )
        result = wait_response(task.resume())
        assert isinstance(result.error, TaskCancelledError)
        assert task.data is None

    def test_progress_hook(self, make_manager, server):
        """Test progress reported per chunk."""
        server.route("/a", content=b"abcdefgh")
        manager = make_manager(start_immediately=False, chunk_size=4)
        seen = []
        task = manager.send(f"{BASE_URL}/a").on_progress(
            lambda progress: seen.append(
                (progress.completed_unit_count, progress.total_unit_count)
            )
        )
        wait_response(task.resume())
        assert seen == [(4, 8), (8, 8)]

    def test_upload(self, make_manager, server):
        """Test upload with send progress."""
        received = []
        server.route("/up", lambda r: received.append(r.content) or httpx.Response(200, content=b"ok"))
        manager = make_manager(start_immediately=False, chunk_size=4)
        sent = []
        task = manager.upload(f"{BASE_URL}/up", b"0123456789").on_upload_progress(
            lambda *args: sent.append(args)
        )

        result = wait_response(task.resume())

        assert isinstance(task.delegate, UploadTaskDelegate)
        assert received == [b"0123456789"]
        assert server.requests_to("/up")[0].method == "POST"
        assert task.upload_progress.completed_unit_count == 10
        assert sent[-1] == (2, 10, 10)
        assert result.value == b"ok"


class TestEndpoint:
    """Endpoint descriptors."""

    def test_endpoint_task(self, manager, server):
        """Test endpoint with headers, parameters and transform."""
        server.route("/v1/usuarios", json={"total": 1})
        done = threading.Event()
        results = []
        endpoint = Endpoint(
            base_url=f"{BASE_URL}/v1/",
            path="/usuarios",
            headers={"X-Api-Key": "k"},
            parameters={"ativo": True},
            transform=transforms.json_value(),
        )

        manager.endpoint_task(endpoint, lambda r: (results.append(r), done.set()))

        assert done.wait(5)
        assert results[0].value == {"total": 1}
        sent = server.requests_to("/v1/usuarios")[0]
        assert sent.headers["X-Api-Key"] == "k"
        assert sent.url.query == b"ativo=1"

    def test_endpoint_headers_do_not_leak(self, manager, server):
        """Test that endpoint headers apply only to its request."""
        server.route("/a", content=b"")
        wait_response(manager.endpoint_task(Endpoint(BASE_URL, "a", headers={"X-Um": "1"})))
        wait_response(manager.send(f"{BASE_URL}/a"))

        first, second = server.requests_to("/a")
        assert first.headers["X-Um"] == "1"
        assert "X-Um" not in second.headers
        assert "X-Um" not in manager.config.headers


class TestDefaultManager:
    """The process-wide default instance."""

    @pytest.fixture(autouse=True)
    def reset_default(self, monkeypatch):
        monkeypatch.setattr(manager_module, "_default_manager", None)
        yield
        if manager_module._default_manager is not None:
            manager_module._default_manager.close()

    def test_created_once(self):
        """Test single creation even under concurrent calls."""
        instances = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            instances.append(default_manager())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(instance) for instance in instances}) == 1
        assert default_manager() is instances[0]

    def test_explicit_managers_are_independent(self, config, transport):
        """Test that the explicit constructor does not use the default instance."""
        with SessionManager(config, transport=transport) as manager:
            assert manager is not default_manager()
