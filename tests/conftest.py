"""
Shared fixtures: a local HTTP server for tool archives and fake tool binaries.
"""

import io
import sys
import threading
import zipfile
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Dict, List

import pytest

from toolrun.core.bootstrap import ToolBootstrapper
from toolrun.core.invoker import ToolInvoker
from toolrun.integrations.download import ArchiveDownloader
from toolrun.models.tool import ToolSpec
from toolrun.utils.platform import current_os


def fake_tool_source(version: str) -> str:
    """Python script acting as a tool that reports version and echoes its arguments."""
    return (
        f"#!{sys.executable}\n"
        "import sys\n"
        "if sys.argv[1:] == ['--version']:\n"
        f"    print('faketool version {version} (build 1234)')\n"
        "    sys.exit(0)\n"
        "print('ran', *sys.argv[1:])\n"
        "sys.stderr.write('done\\n')\n"
        "sys.exit(int(sys.argv[1]) if sys.argv[1:2] and sys.argv[1].isdigit() else 0)\n"
    )


def make_tool_archive(version: str, member: str = "faketool") -> bytes:
    """Zip holding a fake tool; zip entries carry no executable bit."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(member, fake_tool_source(version))
    return buffer.getvalue()


def write_fake_tool(directory: Path, version: str, name: str = "faketool") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(fake_tool_source(version))
    path.chmod(0o755)
    return path


class ArchiveServer:
    """Serves fixed bodies by path and records every request."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.requests: List[str] = []
        server = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                server.requests.append(self.path)
                body = server.files.get(self.path)
                if body is None:
                    self.send_response(404)
                    self.send_header("Content-Length", "0")
                    self.end_headers()
                    return
                self.send_response(200)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format, *args):
                pass

        self.httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self.thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)

    @property
    def base_url(self) -> str:
        host, port = self.httpd.server_address[:2]
        return f"http://{host}:{port}"


@pytest.fixture
def archive_server():
    server = ArchiveServer()
    server.thread.start()
    yield server
    server.httpd.shutdown()
    server.httpd.server_close()


@pytest.fixture
def tool_spec(archive_server):
    return ToolSpec(
        name="faketool",
        default_executable="faketool",
        required_version="1.3.1",
        version_prefix="faketool version ",
        download_url=archive_server.base_url + "/faketool-{version}-{platform}.zip",
        platforms={current_os(): "test-target"}
    )


@pytest.fixture
def tool_url(archive_server):
    return "/faketool-1.3.1-test-target.zip"


@pytest.fixture
def empty_path(tmp_path, monkeypatch):
    """PATH that contains only an empty bin directory."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", str(bin_dir))
    return bin_dir


@pytest.fixture
def make_invoker(tmp_path):
    def _make() -> ToolInvoker:
        downloader = ArchiveDownloader(cache_dir=tmp_path / "cache", timeout=10)
        return ToolInvoker(
            ToolBootstrapper(tmp_path / "tools", downloader),
            version_probe_timeout=30
        )
    return _make
