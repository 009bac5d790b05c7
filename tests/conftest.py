"""pytest configuration for greeter-rpc tests."""

import os
import shutil
import sys
import tempfile
import threading
import time

import pytest


tests_path = os.path.dirname(__file__)
if tests_path not in sys.path:
    sys.path.insert(0, tests_path)

# Create a temporary directory for proto files
_temp_proto_dir = tempfile.mkdtemp()
os.environ["GREETER_RPC_PROTO_PATH"] = _temp_proto_dir

# Ensure the src directory is in the Python path
src_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from greeter_rpc.server import GreeterServer  # noqa: E402
from greeter_rpc.service import Greeter, HelloReply, HelloRequest  # noqa: E402


class RecordingGreeter(Greeter):
    """Greeter that records every request and can be told to fail or stall."""

    def __init__(
        self,
        fail_first: bool = False,
        fail_second: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.fail_first = fail_first
        self.fail_second = fail_second
        self.delay = delay
        self.calls: list[tuple[str, HelloRequest]] = []
        self._lock = threading.Lock()

    def say_hello(self, request: HelloRequest) -> HelloReply:
        self._record("SayHello", request)
        if self.delay:
            time.sleep(self.delay)
        if self.fail_first:
            raise RuntimeError("first greeting refused")
        return super().say_hello(request)

    def say_hello_again(self, request: HelloRequest) -> HelloReply:
        self._record("SayHelloAgain", request)
        if self.fail_second:
            raise RuntimeError("second greeting refused")
        return super().say_hello_again(request)

    def _record(self, method: str, request: HelloRequest) -> None:
        with self._lock:
            self.calls.append((method, request))

    def calls_to(self, method: str) -> list[HelloRequest]:
        return [request for name, request in self.calls if name == method]


@pytest.fixture
def serve():
    """Start a GreeterServer for a Greeter object; returns its target."""
    servers: list[GreeterServer] = []

    def start(greeter: Greeter) -> str:
        server = GreeterServer(max_workers=2, port=0)
        server.mount(greeter)
        port = server.start()
        servers.append(server)
        return f"localhost:{port}"

    yield start

    for server in servers:
        server.stop(grace=0)


def pytest_sessionfinish(session: pytest.Session, exitstatus: pytest.ExitCode) -> None:
    """Clean up the entire temporary directory when the test session ends."""
    _ = session
    _ = exitstatus
    shutil.rmtree(_temp_proto_dir, ignore_errors=True)
