import argparse
import enum
import functools
import importlib
import importlib.util
import inspect
import logging
import os
import sys
import types
from collections.abc import Callable
from pathlib import Path
from typing import Any, NamedTuple, Type, get_args, get_origin

import grpc_tools
from grpc_tools import protoc

from .config import configure_logging, get_proto_path, is_skip_generation
from .service import PACKAGE_NAME, Greeter, Message

logger = logging.getLogger(__name__)


class CodegenError(Exception):
    """Raised when protoc fails to compile a generated .proto file."""


###############################################################################
# 1. Message converters
#    (protobuf message <-> pydantic Message)
###############################################################################


def primitiveProtoValueToPythonValue(value: Any):
    # Returns the value as-is (primitive type).
    return value


def generate_converter(annotation: Type[Any] | None) -> Callable[[Any], Any]:
    """
    Returns a converter function to convert protobuf types to Python types.
    This is used when reading replies and incoming requests.
    """
    if annotation in (int, str, bool, bytes, float):
        return primitiveProtoValueToPythonValue

    if is_enum_type(annotation):

        def enum_converter(value: int):
            return annotation(value)  # type: ignore[misc]

        return enum_converter

    origin = get_origin(annotation)
    if origin in (list, tuple):
        item_converter = generate_converter(get_args(annotation)[0])

        def seq_converter(value: Any):
            return [item_converter(v) for v in value]

        return seq_converter

    if origin is dict:
        key_converter = generate_converter(get_args(annotation)[0])
        value_converter = generate_converter(get_args(annotation)[1])

        def dict_converter(value: Any):
            return {key_converter(k): value_converter(v) for k, v in value.items()}

        return dict_converter

    if is_message_type(annotation):
        return generate_message_converter(annotation)  # type: ignore[arg-type]

    return primitiveProtoValueToPythonValue


def generate_message_converter(arg_type: Type[Message]) -> Callable[[Any], Message]:
    """Return a converter function for protobuf -> Python Message."""

    fields = arg_type.model_fields
    converters = {
        field: generate_converter(field_type.annotation)
        for field, field_type in fields.items()
    }

    def converter(request: Any) -> Message:
        rdict = {}
        for field in fields.keys():
            rdict[field] = converters[field](getattr(request, field))
        return arg_type(**rdict)

    return converter


def convert_python_message_to_proto(
    py_msg: Message, msg_type: Type[Message], pb2_module: Any
) -> object:
    """
    Convert a Python Pydantic Message instance to a protobuf message instance.
    """
    field_dict = {}
    for name, field_info in msg_type.model_fields.items():
        value = getattr(py_msg, name)
        if value is None or field_info.annotation is None:
            continue
        field_dict[name] = python_value_to_proto(
            field_info.annotation, value, pb2_module
        )

    proto_class = getattr(pb2_module, msg_type.__name__)
    return proto_class(**field_dict)


def python_value_to_proto(field_type: Type[Any], value: Any, pb2_module: Any) -> Any:
    """Perform Python->protobuf type conversion for each field value."""
    if is_enum_type(field_type):
        return value.value  # proto3 enum is an int

    origin = get_origin(field_type)
    if origin in (list, tuple):
        inner_type = get_args(field_type)[0]
        return [python_value_to_proto(inner_type, v, pb2_module) for v in value]

    if origin is dict:
        key_type, val_type = get_args(field_type)
        return {
            python_value_to_proto(key_type, k, pb2_module): python_value_to_proto(
                val_type, v, pb2_module
            )
            for k, v in value.items()
        }

    if is_message_type(field_type):
        return convert_python_message_to_proto(value, field_type, pb2_module)

    return value


###############################################################################
# 2. Generating proto files
###############################################################################


def is_enum_type(python_type: Any) -> bool:
    """Return True if the given Python type is an enum."""
    return inspect.isclass(python_type) and issubclass(python_type, enum.Enum)


def is_message_type(python_type: Any) -> bool:
    return inspect.isclass(python_type) and issubclass(python_type, Message)


def protobuf_type_mapping(python_type: Any) -> str | None:
    """Map a Python type to a protobuf type name."""
    mapping = {
        int: "int32",
        str: "string",
        bool: "bool",
        bytes: "bytes",
        float: "float",
    }

    if is_enum_type(python_type) or is_message_type(python_type):
        return python_type.__name__

    origin = get_origin(python_type)
    if origin in (list, tuple):
        inner_proto_type = protobuf_type_mapping(get_args(python_type)[0])
        if inner_proto_type:
            return f"repeated {inner_proto_type}"
    elif origin is dict:
        key_type, value_type = get_args(python_type)
        key_proto_type = protobuf_type_mapping(key_type)
        value_proto_type = protobuf_type_mapping(value_type)
        if key_proto_type and value_proto_type:
            return f"map<{key_proto_type}, {value_proto_type}>"

    return mapping.get(python_type)


def comment_out(obj: Any) -> tuple[str, ...]:
    """Convert the docstring of obj into commented-out lines in a .proto file.

    Only a docstring written on obj itself is used, never an inherited one.
    """
    docstr = obj.__doc__
    if not docstr:
        return tuple()

    lines = inspect.cleandoc(docstr).split("\n")
    return tuple("//" if line == "" else f"// {line}" for line in lines)


def indent_lines(lines: list[str], indentation: str = "    ") -> str:
    """Indent multiple lines with a given indentation string."""
    return "\n".join(indentation + line for line in lines)


def generate_enum_definition(enum_type: Any) -> str:
    """Generate a protobuf enum definition from a Python enum."""
    members = [
        f"  {member.name} = {member.value};"
        for member in enum_type.__members__.values()
    ]
    return f"enum {enum_type.__name__} {{\n" + "\n".join(members) + "\n}"


def generate_message_definition(
    message_type: Type[Message],
    done_enums: set[Any],
    done_messages: set[Any],
) -> tuple[str, list[Any]]:
    """
    Generate a protobuf message definition for a Pydantic-based Message class.
    Also returns any referenced types (enums, messages) that need to be defined.
    """
    fields: list[str] = []
    refs: list[Any] = []

    for index, (field_name, field_info) in enumerate(
        message_type.model_fields.items(), start=1
    ):
        field_type = field_info.annotation
        proto_typename = protobuf_type_mapping(field_type)
        if proto_typename is None:
            raise TypeError(
                f"Field {message_type.__name__}.{field_name}: "
                f"type {field_type} is not supported."
            )

        for ref in (field_type, *get_args(field_type)):
            if is_enum_type(ref) and ref not in done_enums:
                refs.append(ref)
            elif is_message_type(ref) and ref not in done_messages:
                refs.append(ref)

        if field_info.description:
            fields.append("// " + field_info.description)
        fields.append(f"{proto_typename} {field_name} = {index};")

    msg_def = f"message {message_type.__name__} {{\n{indent_lines(fields)}\n}}"
    return msg_def, refs


def get_request_arg_type(sig: inspect.Signature) -> Any:
    """Return the type annotation of the first parameter (request) of a method."""
    num_of_params = len(sig.parameters)
    if not (num_of_params == 1 or num_of_params == 2):
        raise TypeError("Method must have exactly one or two parameters")
    return tuple(sig.parameters.values())[0].annotation


def to_pascal_case(name: str) -> str:
    return "".join(part.capitalize() for part in name.split("_"))


def get_rpc_methods(obj: object) -> list[tuple[str, Callable[..., Any]]]:
    """
    Retrieve the list of RPC methods from a service object.
    The method name is converted to PascalCase for .proto compatibility.
    """
    return [
        (to_pascal_case(attr_name), getattr(obj, attr_name))
        for attr_name in dir(obj)
        if not attr_name.startswith("_")
        and inspect.ismethod(getattr(obj, attr_name))
    ]


def generate_proto(obj: object, package_name: str = "") -> str:
    """Generate a .proto definition from a service object."""
    service_class = obj.__class__
    service_name = service_class.__name__
    service_comment = "\n".join(comment_out(service_class))

    rpc_definitions: list[str] = []
    all_type_definitions: list[str] = []
    done_messages: set[Any] = set()
    done_enums: set[Any] = set()

    for method_name, method in get_rpc_methods(obj):
        method_sig = inspect.signature(method)
        request_type = get_request_arg_type(method_sig)
        response_type = method_sig.return_annotation

        message_types = [response_type, request_type]
        while message_types:
            mt = message_types.pop()
            if mt in done_messages:
                continue
            done_messages.add(mt)

            msg_def, refs = generate_message_definition(mt, done_enums, done_messages)
            all_type_definitions.extend(comment_out(mt))
            all_type_definitions.append(msg_def)
            all_type_definitions.append("")

            for r in refs:
                if is_enum_type(r) and r not in done_enums:
                    done_enums.add(r)
                    all_type_definitions.append(generate_enum_definition(r))
                    all_type_definitions.append("")
                elif is_message_type(r) and r not in done_messages:
                    message_types.append(r)

        rpc_definitions.extend(comment_out(method))
        rpc_definitions.append(
            f"rpc {method_name} ({request_type.__name__}) returns ({response_type.__name__});"
        )

    if not package_name:
        package_name = service_name.lower() + ".v1"

    return f"""syntax = "proto3";

package {package_name};

{service_comment}
service {service_name} {{
{indent_lines(rpc_definitions)}
}}

{indent_lines(all_type_definitions, "")}
"""


###############################################################################
# 3. Compiling proto files
###############################################################################


def _run_protoc(proto_path: Path, out_flags: list[str]) -> Path:
    if not proto_path.is_file():
        raise FileNotFoundError(f"{proto_path!r} does not exist")

    proto_path = proto_path.resolve()
    out_dir = proto_path.parent
    well_known_path = os.path.join(os.path.dirname(grpc_tools.__file__), "_proto")
    args = [
        "grpc_tools.protoc",
        f"-I{out_dir}",
        f"-I{well_known_path}",
        *(f"{flag}={out_dir}" for flag in out_flags),
        str(proto_path),
    ]
    logger.debug("Running protoc: %s", " ".join(args[1:]))
    if protoc.main(args) != 0:
        raise CodegenError(f"protoc failed for {proto_path.name} ({out_flags})")
    return out_dir


def _load_module(module_name: str, path: Path) -> types.ModuleType:
    out_str = str(path.parent)
    if out_str not in sys.path:
        sys.path.append(out_str)

    spec = importlib.util.spec_from_file_location(module_name, str(path))
    if spec is None or spec.loader is None:
        raise CodegenError(f"Unable to load generated module {path}")

    module = importlib.util.module_from_spec(spec)
    # The generated grpc module imports its pb2 sibling by name
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        del sys.modules[module_name]
        raise
    return module


def generate_pb_code(proto_path: Path) -> types.ModuleType:
    """
    Run protoc to generate Python message code from proto_path.
    Writes foo_pb2.py and foo_pb2.pyi next to proto_path, then imports and returns the pb2 module.
    """
    out_dir = _run_protoc(proto_path, ["--python_out", "--pyi_out"])
    base_name = proto_path.stem
    return _load_module(base_name + "_pb2", out_dir / f"{base_name}_pb2.py")


def generate_grpc_code(proto_path: Path) -> types.ModuleType:
    """
    Run protoc to generate Python gRPC code from proto_path.
    Writes foo_pb2_grpc.py next to proto_path, then imports and returns that module.
    """
    out_dir = _run_protoc(proto_path, ["--grpc_python_out"])
    base_name = proto_path.stem
    return _load_module(base_name + "_pb2_grpc", out_dir / f"{base_name}_pb2_grpc.py")


def generate_and_compile_proto(
    obj: object,
    package_name: str = "",
    existing_proto_path: Path | None = None,
) -> tuple[Any, Any]:
    base_name = obj.__class__.__name__.lower()
    if is_skip_generation():
        try:
            pb2_module = importlib.import_module(f"{base_name}_pb2")
            pb2_grpc_module = importlib.import_module(f"{base_name}_pb2_grpc")
        except ImportError:
            logger.debug("Prebuilt %s modules not found, generating them", base_name)
        else:
            return pb2_grpc_module, pb2_module

    if existing_proto_path:
        proto_file_path = existing_proto_path
    else:
        proto_file_path = get_proto_path(base_name + ".proto")
        with proto_file_path.open(mode="w", encoding="utf-8") as f:
            _ = f.write(generate_proto(obj, package_name))

    pb2_module = generate_pb_code(proto_file_path)
    pb2_grpc_module = generate_grpc_code(proto_file_path)
    logger.debug("Compiled %s", proto_file_path)
    return pb2_grpc_module, pb2_module


class GreeterModules(NamedTuple):
    pb2: Any
    pb2_grpc: Any


@functools.lru_cache(maxsize=None)
def load_greeter_modules() -> GreeterModules:
    """Compile (once per process) and return the Greeter protobuf modules."""
    pb2_grpc_module, pb2_module = generate_and_compile_proto(Greeter(), PACKAGE_NAME)
    return GreeterModules(pb2=pb2_module, pb2_grpc=pb2_grpc_module)


def main():
    parser = argparse.ArgumentParser(
        description="Generate and compile the greeter proto files."
    )
    _ = parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Output directory (defaults to GREETER_RPC_PROTO_PATH)",
    )
    args = parser.parse_args()
    configure_logging()

    if args.out is not None:
        args.out.mkdir(parents=True, exist_ok=True)
        proto_path = args.out / "greeter.proto"
    else:
        proto_path = get_proto_path("greeter.proto")
    with proto_path.open(mode="w", encoding="utf-8") as f:
        _ = f.write(generate_proto(Greeter(), PACKAGE_NAME))
    _ = generate_pb_code(proto_path)
    _ = generate_grpc_code(proto_path)
    logger.info("Generated greeter modules in %s", proto_path.parent)


if __name__ == "__main__":
    main()
