from typing import TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator

Message: TypeAlias = BaseModel

SERVICE_NAME = "Greeter"
PACKAGE_NAME = "helloworld"


def to_wire_text(value: str) -> str:
    """Return value as text that protobuf can encode as UTF-8.

    Undecodable command-line bytes arrive as lone surrogates; they are
    replaced with U+FFFD.
    """
    try:
        raw = value.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        raw = value.encode("utf-8", "replace")
    return raw.decode("utf-8", "replace")


class HelloRequest(Message):
    """The request message containing the person to greet."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Family name of the person to greet")
    first_name: str = Field(description="First name of the person to greet")
    cin: str = Field(description="National identity card number")

    @field_validator("name", "first_name", "cin")
    @classmethod
    def utf8_safe(cls, v: str) -> str:
        return to_wire_text(v)


class HelloReply(Message):
    """The response message containing the greeting."""

    model_config = ConfigDict(frozen=True)

    message: str


class Greeter:
    """The greeting service definition."""

    def say_hello(self, request: HelloRequest) -> HelloReply:
        """Sends a greeting."""
        return HelloReply(message=f"Hello {_display_name(request)}")

    def say_hello_again(self, request: HelloRequest) -> HelloReply:
        """Sends another greeting."""
        return HelloReply(message=f"Hello again {_display_name(request)}")


def _display_name(request: HelloRequest) -> str:
    return f"{request.first_name} {request.name} (CIN: {request.cin})"
