from .channel import TransportSecurity, close_channel, managed_channel, open_channel
from .client import CallResult, CallStatus, GreeterClient, GreetState
from .codegen import generate_and_compile_proto, generate_proto, load_greeter_modules
from .server import GreeterServer
from .service import Greeter, HelloReply, HelloRequest, Message

__all__ = [
    "Message",
    "HelloRequest",
    "HelloReply",
    "Greeter",
    "TransportSecurity",
    "open_channel",
    "close_channel",
    "managed_channel",
    "GreeterClient",
    "GreetState",
    "CallStatus",
    "CallResult",
    "GreeterServer",
    "generate_proto",
    "generate_and_compile_proto",
    "load_greeter_modules",
]
