"""Tests for download tasks: destination, cancellation and resume."""

import httpx
import pytest

from conftest import BASE_URL, wait_response
from tarefa_http.core.delegates import DownloadTaskDelegate
from tarefa_http.errors import DownloadMoveError, MalformedRequestError, TaskCancelledError
from tarefa_http.http import ResumeData, TaskKind
from tarefa_http.models import ResponseDisposition

CONTENT = b"0123456789abcdef"
ETAG = '"v1"'


def ranged_file(request: httpx.Request) -> httpx.Response:
    """Serve CONTENT, honouring Range when If-Range matches."""
    range_header = request.headers.get("Range")
    if range_header and request.headers.get("If-Range") == ETAG:
        start = int(range_header.removeprefix("bytes=").rstrip("-"))
        return httpx.Response(
            206,
            content=CONTENT[start:],
            headers={
                "ETag": ETAG,
                "Content-Range": f"bytes {start}-{len(CONTENT) - 1}/{len(CONTENT)}",
            },
        )
    return httpx.Response(200, content=CONTENT, headers={"ETag": ETAG})


def temporary_files(directory):
    return sorted(directory.glob("tarefa-http-*.tmp"))


@pytest.fixture
def out_dir(tmp_path):
    path = tmp_path / "out"
    path.mkdir()
    return path


class TestDestination:
    """Moving the temporary file to the caller's destination."""

    def test_moved_to_destination(self, manager, server, config, out_dir):
        """Test file moved and temporary directory left empty."""
        server.route("/arquivo.pdf", ranged_file)
        seen = []

        def resolver(location, response):
            seen.append((location.read_bytes(), response.status_code))
            return out_dir / "arquivo.pdf"

        task = manager.download(f"{BASE_URL}/arquivo.pdf", resolver)
        result = wait_response(task)

        assert result.error is None
        assert task.kind is TaskKind.DOWNLOAD
        assert isinstance(task.delegate, DownloadTaskDelegate)
        assert seen == [(CONTENT, 200)]
        assert task.destination == out_dir / "arquivo.pdf"
        assert task.destination.read_bytes() == CONTENT
        assert task.progress.completed_unit_count == len(CONTENT)
        assert temporary_files(config.temporary_directory) == []

    def test_without_destination_file_is_discarded(self, manager, server, config):
        """Test that without a destination the temporary file is deleted."""
        server.route("/a", content=CONTENT)
        task = manager.download(f"{BASE_URL}/a")
        result = wait_response(task)
        assert result.error is None
        assert task.destination is None
        assert temporary_files(config.temporary_directory) == []

    def test_move_failure(self, manager, server, tmp_path):
        """Test error when moving into a missing directory."""
        server.route("/a", content=CONTENT)
        task = manager.download(
            f"{BASE_URL}/a", lambda location, response: tmp_path / "nao" / "existe.bin"
        )
        result = wait_response(task)
        assert isinstance(result.error, DownloadMoveError)
        assert task.destination is None

    def test_resolver_failure(self, manager, server):
        """Test exception raised by the destination resolver."""
        server.route("/a", content=CONTENT)

        def resolver(location, response):
            raise RuntimeError("sem destino")

        result = wait_response(manager.download(f"{BASE_URL}/a", resolver))
        assert isinstance(result.error, DownloadMoveError)
        assert isinstance(result.error.__cause__, RuntimeError)

    def test_download_progress_hook(self, make_manager, server):
        """Test progress per written chunk."""
        server.route("/a", content=CONTENT)
        manager = make_manager(start_immediately=False, chunk_size=4)
        written = []
        task = manager.download(f"{BASE_URL}/a").on_download_progress(
            lambda *args: written.append(args)
        )
        wait_response(task.resume())
        assert written == [(4, 4, 16), (4, 8, 16), (4, 12, 16), (4, 16, 16)]

    def test_save_to_requires_download(self, manager, server):
        """Test save_to on a data task."""
        server.route("/a", content=b"")
        task = manager.send(f"{BASE_URL}/a")
        with pytest.raises(TypeError):
            task.save_to(lambda location, response: location)


class TestResume:
    """Cancel with resume data, then continue from the offset."""

    def cancelled_download(self, manager):
        task = manager.download(f"{BASE_URL}/grande.bin")
        task.on_download_progress(lambda *args: task.cancel())
        result = wait_response(task.resume())
        assert isinstance(result.error, TaskCancelledError)
        return task

    def test_cancel_produces_resume_data(self, make_manager, server, tmp_path):
        """Test resume data after cancelling on the first chunk."""
        server.route("/grande.bin", ranged_file)
        manager = make_manager(start_immediately=False, chunk_size=4)

        task = self.cancelled_download(manager)

        resume = ResumeData.from_bytes(task.resume_data)
        assert resume.url == f"{BASE_URL}/grande.bin"
        assert resume.bytes_received == 4
        assert resume.etag == ETAG
        assert resume.has_partial_file()
        assert temporary_files(tmp_path) != []

    def test_resume_with_partial_content(self, make_manager, server, tmp_path, out_dir):
        """Test resuming with 206: the final file holds the full content."""
        server.route("/grande.bin", ranged_file)
        manager = make_manager(start_immediately=False, chunk_size=4)
        resume_data = self.cancelled_download(manager).resume_data
        offsets = []

        resumed = manager.download_resuming(
            resume_data, lambda location, response: out_dir / "grande.bin"
        ).on_resume(lambda offset, total: offsets.append((offset, total)))
        result = wait_response(resumed.resume())

        assert result.error is None
        assert result.response.status_code == 206
        last = server.requests_to("/grande.bin")[-1]
        assert last.headers["Range"] == "bytes=4-"
        assert last.headers["If-Range"] == ETAG
        assert offsets == [(4, len(CONTENT))]
        assert (out_dir / "grande.bin").read_bytes() == CONTENT
        assert temporary_files(tmp_path) == []

    def test_resume_when_server_ignores_range(self, make_manager, server, tmp_path, out_dir):
        """Test resuming with 200: the download starts over."""
        server.route("/grande.bin", ranged_file)
        manager = make_manager(start_immediately=False, chunk_size=4)
        resume_data = self.cancelled_download(manager).resume_data
        server.route("/grande.bin", content=CONTENT)
        offsets = []

        resumed = manager.download_resuming(
            resume_data, lambda location, response: out_dir / "grande.bin"
        ).on_resume(lambda offset, total: offsets.append(offset))
        result = wait_response(resumed.resume())

        assert result.error is None
        assert offsets == [0]
        assert (out_dir / "grande.bin").read_bytes() == CONTENT
        assert temporary_files(tmp_path) == []

    def test_invalid_resume_data(self, manager):
        """Test invalid resume data: no task is created."""
        with pytest.raises(MalformedRequestError):
            manager.download_resuming(b"nao e json")
        assert manager.active_task_count == 0

    def test_cancel_without_data_gives_no_resume_data(self, make_manager, server):
        """Test cancellation before any byte arrives."""
        server.route("/a", content=CONTENT)
        manager = make_manager(start_immediately=False)
        task = manager.download(f"{BASE_URL}/a")
        task.cancel()
        result = wait_response(task)
        assert isinstance(result.error, TaskCancelledError)
        assert task.resume_data is None


class TestBecomeDownload:
    """A data task converted into a download from its response."""

    def test_data_task_becomes_download(self, make_manager, server, out_dir):
        """Test conversion to a download with a new id and destination."""
        server.route("/relatorio", content=CONTENT)
        manager = make_manager(start_immediately=False)
        downloads = []

        def adopt(download):
            download.save_to(lambda location, response: out_dir / "relatorio.bin")
            downloads.append(download)

        task = (
            manager.send(f"{BASE_URL}/relatorio")
            .on_response(lambda response: ResponseDisposition.BECOME_DOWNLOAD)
            .on_become_download(adopt)
        )
        result = wait_response(task.resume())

        assert result.error is None
        assert result.value is None
        assert len(downloads) == 1
        download = downloads[0]
        assert download.task_id != task.task_id
        assert download.kind is TaskKind.DOWNLOAD
        assert download.wait(5)
        assert download.error is None
        assert (out_dir / "relatorio.bin").read_bytes() == CONTENT
        assert len(server.requests_to("/relatorio")) == 1
