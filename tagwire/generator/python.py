"""Python code generator for tagwire schemas."""

import math
from dataclasses import dataclass
from importlib import resources

from jinja2 import Environment, PackageLoader

from ..proto.descriptor import FileDescriptorSet, load_file_descriptor_set, walk_enums, walk_messages
from ..proto.registry import SchemaRegistry
from ..proto.types import ZERO_VALUES, FieldDescriptor, SchemaError

RUNTIME_FILES = [
    "__init__.py",
    "wire.py",
    "types.py",
    "serialization.py",
    "registry.py",
    "framing.py",
    "objects.py",
    "descriptor.py",
]

env = Environment(
    loader=PackageLoader("tagwire.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

template = env.get_template("python.py.j2")

# Map semantic types to Python type annotations
PRIMITIVE_TYPE_MAP = {
    "bool": "bool",
    "float": "float",
    "double": "float",
    "string": "str",
    "bytes": "bytes",
}


@dataclass
class EnumModel:
    full_name: str
    class_name: str
    values: list[tuple[str, int]]


@dataclass
class FieldModel:
    attr: str
    annotation: str
    args: str


@dataclass
class MessageModel:
    full_name: str
    class_name: str
    fields: list[FieldModel]


def class_name(full_name: str, package: str) -> str:
    """Python class name for a type: the name inside its package, dots as underscores."""
    if package and full_name.startswith(package + "."):
        full_name = full_name[len(package) + 1 :]
    return full_name.replace(".", "_")


def _map_type(fd: FieldDescriptor, names: dict[str, str]) -> str:
    """Map a field to a Python type annotation."""
    if fd.is_message:
        base = names[fd.type_name]  # type: ignore[index]
        return f"list[{base}]" if fd.repeated else f"{base} | None"
    if fd.type == "enum":
        base = names[fd.type_name]  # type: ignore[index]
    else:
        base = PRIMITIVE_TYPE_MAP.get(fd.type, "int")
    return f"list[{base}]" if fd.repeated else base


def _default_literal(fd: FieldDescriptor, names: dict[str, str], registry: SchemaRegistry) -> str | None:
    if fd.repeated or fd.is_message:
        return None
    value = fd.default
    if fd.type == "enum":
        member = registry.enum_type(fd.type_name).name_for(value)
        if member is None:
            return str(int(value))
        return f"{names[fd.type_name]}.{member}"  # type: ignore[index]
    if value is None or value == ZERO_VALUES[fd.type]:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return 'float("nan")'
        if math.isinf(value):
            return 'float("inf")' if value > 0 else 'float("-inf")'
    return repr(value)


def _field_args(fd: FieldDescriptor, names: dict[str, str], registry: SchemaRegistry) -> str:
    """Generate the arguments for proto_field()."""
    args = [str(fd.number), f'"{fd.type}"']
    if fd.repeated:
        args.append("repeated=True")
    if fd.packed:
        args.append("packed=True")
    if fd.type_name:
        args.append(f'type_name="{fd.type_name}"')
    if fd.attr != fd.name:
        args.append(f'name="{fd.name}"')
    if fd.oneof:
        args.append(f'oneof="{fd.oneof}"')
    default = _default_literal(fd, names, registry)
    if default is not None:
        args.append(f"default={default}")
    return ", ".join(args)


def _models(file_set: FileDescriptorSet, registry: SchemaRegistry) -> tuple[list[EnumModel], list[MessageModel]]:
    names: dict[str, str] = {}
    enum_names: list[str] = []
    message_names: list[str] = []

    for fdp in file_set.file:
        for full_name, _ in walk_enums(fdp.package, fdp.enum_type, fdp.message_type):
            names[full_name] = class_name(full_name, fdp.package)
            enum_names.append(full_name)
        for full_name, _ in walk_messages(fdp.package, fdp.message_type):
            names[full_name] = class_name(full_name, fdp.package)
            message_names.append(full_name)

    seen: dict[str, str] = {}
    for full_name, name in names.items():
        if name in seen:
            raise SchemaError(f"{full_name} and {seen[name]} both generate class {name}")
        seen[name] = full_name

    enums = [
        EnumModel(
            full_name=full_name,
            class_name=names[full_name],
            values=[(name, int(member)) for name, member in registry.enum_type(full_name).__members__.items()],
        )
        for full_name in enum_names
    ]
    messages = [
        MessageModel(
            full_name=full_name,
            class_name=names[full_name],
            fields=[
                FieldModel(attr=fd.attr, annotation=_map_type(fd, names), args=_field_args(fd, names, registry))
                for fd in registry.message_type(full_name).descriptor().fields
            ],
        )
        for full_name in message_names
    ]
    return enums, messages


def render(
    file_set: FileDescriptorSet,
    runtime_import: str = "tagwire_runtime",
) -> str:
    """Render the types of a descriptor set to Python source code.

    Raises:
        SchemaError: The schemas do not load, or two types map to one class name.
    """
    registry = load_file_descriptor_set(file_set)
    enums, messages = _models(file_set, registry)
    return template.render(
        enums=enums,
        messages=messages,
        sources=[fdp.name for fdp in file_set.file],
        runtime_import=runtime_import,
    )


def runtime() -> dict[str, str]:
    """Return the Python runtime files as a dict of filename -> content."""
    result: dict[str, str] = {}
    for filename in RUNTIME_FILES:
        content = resources.files("tagwire.proto").joinpath(filename).read_text()
        result[filename] = content
    return result
