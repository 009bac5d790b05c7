import argparse
import inspect
import logging
import signal
import threading
from collections.abc import Callable
from concurrent import futures
from typing import Any

import grpc
from grpc_health.v1 import health_pb2, health_pb2_grpc
from grpc_health.v1.health import HealthServicer
from grpc_reflection.v1alpha import reflection
from pydantic import ValidationError

from .codegen import (
    convert_python_message_to_proto,
    generate_message_converter,
    get_request_arg_type,
    load_greeter_modules,
)
from .config import configure_logging
from .service import SERVICE_NAME, Greeter, Message

logger = logging.getLogger(__name__)


def to_snake_case(name: str) -> str:
    return "".join(
        f"_{c.lower()}" if c.isupper() and i > 0 else c.lower()
        for i, c in enumerate(name)
    )


def connect_obj_with_stub(pb2_grpc_module: Any, pb2_module: Any, obj: object) -> type:
    """
    Connect a Python service object to the generated Greeter servicer.
    Returns a subclass of GreeterServicer with concrete implementations.
    """
    stub_class = getattr(pb2_grpc_module, SERVICE_NAME + "Servicer")

    class ConcreteServiceClass(stub_class):
        """Dynamically generated servicer class with stub methods implemented."""

        pass

    def implement_stub_method(
        method: Callable[..., Message],
    ) -> Callable[[object, Any, Any], Any]:
        """
        Wraps a user-defined method (request[, context]) -> R into a gRPC stub signature:
        (self, request_proto, context) -> response_proto
        """
        sig = inspect.signature(method)
        converter = generate_message_converter(get_request_arg_type(sig))
        response_type = sig.return_annotation
        pass_context = len(sig.parameters) == 2

        def stub_method(self: object, request: Any, context: Any) -> Any:
            _ = self
            try:
                arg = converter(request)
                resp_obj = method(arg, context) if pass_context else method(arg)
                return convert_python_message_to_proto(
                    resp_obj, response_type, pb2_module
                )
            except ValidationError as e:
                return context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(e))
            except Exception as e:
                logger.exception("%s failed", method.__name__)
                return context.abort(grpc.StatusCode.INTERNAL, str(e))

        return stub_method

    service_descriptor = pb2_module.DESCRIPTOR.services_by_name[SERVICE_NAME]
    for method_descriptor in service_descriptor.methods:
        method = getattr(obj, to_snake_case(method_descriptor.name), None)
        if method is None:
            raise TypeError(
                f"{obj.__class__.__name__} does not implement {method_descriptor.name}"
            )
        setattr(ConcreteServiceClass, method_descriptor.name, implement_stub_method(method))

    return ConcreteServiceClass


class GreeterServer:
    """A gRPC server for the Greeter service using a ThreadPoolExecutor."""

    def __init__(self, max_workers: int = 8, port: int = 50051, *interceptors: Any) -> None:
        self._server: grpc.Server = grpc.server(
            futures.ThreadPoolExecutor(max_workers), interceptors=interceptors
        )
        self._service_names: list[str] = []
        self._port: int = port
        self._stopped = threading.Event()

    def set_port(self, port: int):
        """Set the port number for the gRPC server."""
        self._port = port

    def mount(self, obj: Greeter):
        """Mount a Greeter implementation on the server."""
        pb2_module, pb2_grpc_module = load_greeter_modules()
        concreteServiceClass = connect_obj_with_stub(pb2_grpc_module, pb2_module, obj)
        pb2_grpc_module.add_GreeterServicer_to_server(
            concreteServiceClass(), self._server
        )
        self._service_names.append(
            pb2_module.DESCRIPTOR.services_by_name[SERVICE_NAME].full_name
        )

    def start(self) -> int:
        """Bind the port and start serving. Returns the bound port."""
        SERVICE_NAMES = (
            health_pb2.DESCRIPTOR.services_by_name["Health"].full_name,
            reflection.SERVICE_NAME,
            *self._service_names,
        )
        health_pb2_grpc.add_HealthServicer_to_server(HealthServicer(), self._server)
        reflection.enable_server_reflection(SERVICE_NAMES, self._server)

        port = self._server.add_insecure_port(f"[::]:{self._port}")
        if port == 0:
            raise RuntimeError(f"Unable to bind port {self._port}")
        self._server.start()
        logger.info("gRPC server is listening on port %d", port)
        return port

    def stop(self, grace: float | None = None):
        self._server.stop(grace).wait()
        self._stopped.set()
        logger.info("gRPC server shutdown.")

    def run(self, *objs: Greeter):
        """
        Mount the services and serve until SIGINT or SIGTERM.
        """
        for obj in objs or (Greeter(),):
            self.mount(obj)
        _ = self.start()

        def handle_signal(signum: int, frame: Any):
            _ = frame
            logger.info("Received signal %d, shutting down...", signum)
            self.stop(grace=10)

        _ = signal.signal(signal.SIGINT, handle_signal)
        _ = signal.signal(signal.SIGTERM, handle_signal)

        self._stopped.wait()


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description="Run the Greeter gRPC server.")
    _ = parser.add_argument(
        "--port", type=int, default=50051, help="Port to listen on (default: 50051)"
    )
    _ = parser.add_argument(
        "--max-workers", type=int, default=8, help="Worker threads (default: 8)"
    )
    args = parser.parse_args(argv)
    configure_logging()

    GreeterServer(args.max_workers, args.port).run()


if __name__ == "__main__":
    main()
