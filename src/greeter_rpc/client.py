"""A simple client that requests a greeting from the Greeter service."""

import enum
import logging
from typing import Any, NamedTuple

import grpc

from .codegen import (
    GreeterModules,
    convert_python_message_to_proto,
    generate_message_converter,
    load_greeter_modules,
)
from .service import HelloReply, HelloRequest

logger = logging.getLogger(__name__)


class CallStatus(enum.Enum):
    OK = "ok"
    FAILED = "failed"


class CallResult(NamedTuple):
    """Outcome of one remote call."""

    status: CallStatus
    reply: HelloReply | None = None
    error: grpc.RpcError | None = None


class GreetState(enum.Enum):
    START = "start"
    FIRST_CALLED = "first_called"
    SECOND_CALLED = "second_called"
    ABORTED = "aborted"


def _enter(state: GreetState) -> GreetState:
    logger.debug("Greeting exchange: %s", state.name)
    return state


def describe_rpc_error(error: grpc.RpcError) -> str:
    """Return the status code and details carried by a failed call."""
    if isinstance(error, grpc.Call):
        code = error.code()
        code_name = code.name if code is not None else "UNKNOWN"
        return f"{code_name} - {error.details()}"
    return repr(error)


class GreeterClient:
    """Client for the Greeter service over an existing channel.

    The channel is borrowed: it is not validated here and never closed by
    the client.
    """

    def __init__(
        self,
        channel: grpc.Channel,
        timeout: float | None = None,
        modules: GreeterModules | None = None,
    ) -> None:
        self._modules = modules or load_greeter_modules()
        self._stub = self._modules.pb2_grpc.GreeterStub(channel)
        self._timeout = timeout
        self._to_reply = generate_message_converter(HelloReply)

    def greet(self, name: str, first_name: str, cin: str) -> None:
        """Say hello to the server, then say hello again if that worked."""
        logger.info("Will try to greet %s %s with CIN: %s ...", name, first_name, cin)
        request = HelloRequest(name=name, first_name=first_name, cin=cin)
        _ = self.exchange(request)

    def exchange(self, request: HelloRequest) -> GreetState:
        """Run the two-call exchange for ``request`` and return its final state.

        ``SayHelloAgain`` is only issued after ``SayHello`` succeeded, and
        both calls receive the very same protobuf request.
        """
        proto_request = convert_python_message_to_proto(
            request, HelloRequest, self._modules.pb2
        )

        _enter(GreetState.START)
        first = self._call("SayHello", proto_request)
        _enter(GreetState.FIRST_CALLED)
        if first.status is CallStatus.FAILED:
            return _enter(GreetState.ABORTED)

        _ = self._call("SayHelloAgain", proto_request)
        return _enter(GreetState.SECOND_CALLED)

    def _call(self, method_name: str, proto_request: Any) -> CallResult:
        rpc = getattr(self._stub, method_name)
        try:
            response = rpc(proto_request, timeout=self._timeout)
        except grpc.RpcError as e:
            logger.warning("RPC failed: %s", describe_rpc_error(e))
            return CallResult(CallStatus.FAILED, error=e)

        reply = self._to_reply(response)
        logger.info("Greeting: %s", reply.message)
        return CallResult(CallStatus.OK, reply=reply)
