import enum
import sys

import pytest
from pydantic import BaseModel

from greeter_rpc import Message
from greeter_rpc.codegen import (
    CodegenError,
    convert_python_message_to_proto,
    generate_and_compile_proto,
    generate_message_converter,
    generate_pb_code,
    generate_proto,
    get_request_arg_type,
    load_greeter_modules,
    to_pascal_case,
)
from greeter_rpc.service import PACKAGE_NAME, Greeter, HelloReply, HelloRequest


class Color(enum.Enum):
    RED = 0
    GREEN = 1


class Item(Message):
    sku: str


class Catalog(Message):
    """A catalog page."""

    title: str
    tags: list[str]
    counts: dict[str, int]
    color: Color
    items: list[Item]
    featured: Item


class CatalogBase:
    """Base catalog operations shared by every storefront."""


class CatalogService(CatalogBase):
    def get_catalog(self, request: Catalog) -> Catalog:
        return request


def test_generate_greeter_proto():
    proto = generate_proto(Greeter(), PACKAGE_NAME)

    assert 'syntax = "proto3";' in proto
    assert "package helloworld;" in proto
    assert "// The greeting service definition." in proto
    assert "service Greeter {" in proto
    assert "    // Sends a greeting." in proto
    assert "    rpc SayHello (HelloRequest) returns (HelloReply);" in proto
    assert "    rpc SayHelloAgain (HelloRequest) returns (HelloReply);" in proto
    assert "// The request message containing the person to greet." in proto
    assert "    string name = 1;" in proto
    assert "    string first_name = 2;" in proto
    assert "    string cin = 3;" in proto
    assert "    // National identity card number" in proto
    assert "    string message = 1;" in proto
    assert proto.count("message HelloRequest {") == 1
    assert proto.count("message HelloReply {") == 1


def test_default_package_name():
    assert "package greeter.v1;" in generate_proto(Greeter())


def test_generate_proto_for_collection_and_nested_types():
    proto = generate_proto(CatalogService())

    assert "rpc GetCatalog (Catalog) returns (Catalog);" in proto
    assert "repeated string tags = 2;" in proto
    assert "map<string, int32> counts = 3;" in proto
    assert "Color color = 4;" in proto
    assert "repeated Item items = 5;" in proto
    assert "Item featured = 6;" in proto
    assert "enum Color {" in proto
    assert "  GREEN = 1;" in proto
    assert proto.count("message Item {") == 1
    # Docstrings inherited from CatalogBase and BaseModel stay out
    assert "shared by every storefront" not in proto
    assert BaseModel.__doc__.strip().splitlines()[0] not in proto
    assert "\n\nservice CatalogService {" in proto


def test_unsupported_field_type():
    class Odd(Message):
        value: set[int]

    class OddService:
        def check(self, request: Odd) -> Odd:
            return request

    with pytest.raises(TypeError, match="Odd.value"):
        _ = generate_proto(OddService())


def test_request_arg_type_requires_one_or_two_parameters():
    import inspect

    def too_many(a: HelloRequest, b: object, c: object) -> HelloReply:
        raise NotImplementedError

    with pytest.raises(TypeError):
        _ = get_request_arg_type(inspect.signature(too_many))


def test_to_pascal_case():
    assert to_pascal_case("say_hello_again") == "SayHelloAgain"


def test_load_greeter_modules_is_cached():
    modules = load_greeter_modules()

    assert load_greeter_modules() is modules
    assert hasattr(modules.pb2_grpc, "GreeterStub")
    assert hasattr(modules.pb2_grpc, "add_GreeterServicer_to_server")
    service = modules.pb2.DESCRIPTOR.services_by_name["Greeter"]
    assert service.full_name == "helloworld.Greeter"
    assert [m.name for m in service.methods] == ["SayHello", "SayHelloAgain"]
    assert sys.modules["greeter_pb2"] is modules.pb2


def test_request_and_reply_conversion():
    pb2 = load_greeter_modules().pb2
    request = HelloRequest(name="GHOUMA", first_name="MAYEZ", cin="99999999")

    proto_request = convert_python_message_to_proto(request, HelloRequest, pb2)
    assert proto_request.name == "GHOUMA"
    assert proto_request.first_name == "MAYEZ"
    assert proto_request.cin == "99999999"

    to_reply = generate_message_converter(HelloReply)
    assert to_reply(pb2.HelloReply(message="Hi")) == HelloReply(message="Hi")


def test_nested_message_conversion():
    pb2_grpc, pb2 = generate_and_compile_proto(CatalogService(), "catalog.v1")
    assert hasattr(pb2_grpc, "CatalogServiceStub")

    catalog = Catalog(
        title="spring",
        tags=["new", "sale"],
        counts={"new": 2},
        color=Color.GREEN,
        items=[Item(sku="a-1"), Item(sku="b-2")],
        featured=Item(sku="a-1"),
    )
    proto = convert_python_message_to_proto(catalog, Catalog, pb2)
    assert proto.color == 1
    assert [item.sku for item in proto.items] == ["a-1", "b-2"]

    assert generate_message_converter(Catalog)(proto) == catalog


def test_skip_generation_reuses_compiled_modules(monkeypatch: pytest.MonkeyPatch):
    modules = load_greeter_modules()
    monkeypatch.setenv("GREETER_RPC_SKIP_GENERATION", "true")

    pb2_grpc, pb2 = generate_and_compile_proto(Greeter(), PACKAGE_NAME)

    assert pb2 is modules.pb2
    assert pb2_grpc is modules.pb2_grpc


def test_missing_proto_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        _ = generate_pb_code(tmp_path / "missing.proto")


def test_invalid_proto_file(tmp_path):
    broken = tmp_path / "broken.proto"
    _ = broken.write_text('syntax = "proto3";\nmessage {', encoding="utf-8")

    with pytest.raises(CodegenError):
        _ = generate_pb_code(broken)
