"""Command-line interface for tagwire schemas and messages."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from tagwire.generator import parse, python
from tagwire.generator.loader import compile_files, load_descriptor_set, load_schema
from tagwire.proto import (
    SchemaError,
    SerializationError,
    ToObjectOptions,
    ValidationError,
    encode_delimited,
    iter_delimited,
)

if TYPE_CHECKING:
    from tagwire.generator.types import ProtoFile, ProtoMessage

_include_option = click.option(
    "--include",
    "-I",
    "include_paths",
    multiple=True,
    type=click.Path(exists=True, file_okay=False),
    help="Directory to search for imports (repeatable)",
)

_schema_option = click.option(
    "--schema",
    "-s",
    "schemas",
    multiple=True,
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help=".proto file or encoded descriptor set (repeatable)",
)


@contextmanager
def _user_errors() -> Iterator[None]:
    """Report schema, codec and input errors as CLI errors."""
    try:
        yield
    except (SchemaError, SerializationError, ValidationError) as exc:
        raise click.ClickException(str(exc)) from exc
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"invalid JSON: {exc}") from exc


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
def cli(verbose: bool) -> None:
    """Tagwire schema compiler and message codec."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


@cli.command()
@click.option("--input", "-i", "input_files", multiple=True, required=True, help="Input schema file")
@click.option("--output", "-o", "output_file", required=True, help="Output file")
@_include_option
@click.option(
    "--runtime-import",
    "runtime_import",
    is_flag=False,
    flag_value="tagwire.proto",
    default=None,
    help="Import path for runtime. No value=tagwire.proto, omit=tagwire_runtime",
)
def gen(input_files: tuple[str, ...], output_file: str, include_paths: tuple[str, ...], runtime_import: str | None) -> None:
    """Generate Python record classes from schema files."""
    import_path = runtime_import if runtime_import is not None else "tagwire_runtime"
    with _user_errors():
        generated_file = python.render(load_descriptor_set(input_files, include_paths), runtime_import=import_path)

    with open(output_file, "w", encoding="utf-8") as f:
        f.write(generated_file)


@cli.command()
@click.option("--output", "-o", "output_path", default=".", help="Output directory")
@click.option("--name", default="tagwire_runtime", help="Runtime folder name")
def runtime(output_path: str, name: str) -> None:
    """Write a copy of the runtime package for generated code."""
    runtime_dir = Path(output_path) / name
    runtime_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in python.runtime().items():
        (runtime_dir / filename).write_text(content)
    print(f"Generated Python runtime in {runtime_dir}")


@cli.command("compile")
@click.option("--input", "-i", "input_files", multiple=True, required=True, help="Input .proto file")
@click.option("--output", "-o", "output_file", required=True, help="Output descriptor set")
@_include_option
def compile_(input_files: tuple[str, ...], output_file: str, include_paths: tuple[str, ...]) -> None:
    """Compile .proto files and their imports to an encoded FileDescriptorSet."""
    with _user_errors():
        file_set = compile_files(input_files, include_paths)

    with open(output_file, "wb") as f:
        f.write(file_set.encode())


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input .proto file")
@click.option("--json", "output_json", is_flag=True, help="Output the parsed file as JSON")
def info(input_file: str, output_json: bool) -> None:
    """Display the types declared in a .proto file."""
    with open(input_file, encoding="utf-8") as f:
        text = f.read()

    with _user_errors():
        proto_file = parse(text)

    if output_json:
        print(proto_file.to_json(indent=2))
    else:
        _output_plain(proto_file)


def _label(field_label: str | None, key_type: str | None) -> str:
    if key_type is not None:
        return "map"
    return field_label or ""


def _walk(scope: str, messages: list[ProtoMessage]) -> Iterator[tuple[str, ProtoMessage]]:
    for message in messages:
        full_name = f"{scope}.{message.name}" if scope else message.name
        yield full_name, message
        yield from _walk(full_name, message.messages)


def _output_plain(proto_file: ProtoFile) -> None:
    """Output schema info using rich text formatting."""
    console = Console()

    console.print("[bold cyan]File[/bold cyan]")
    file_table = Table(show_header=False, box=None, padding=(0, 2, 0, 2))
    file_table.add_column("Label", style="dim")
    file_table.add_column("Value", style="white")
    file_table.add_row("Syntax", proto_file.syntax)
    file_table.add_row("Package", proto_file.package or "(none)")
    for imp in proto_file.imports:
        file_table.add_row("Import", imp.path + (f" ({imp.modifier})" if imp.modifier else ""))
    console.print(file_table)
    console.print()

    scope = proto_file.package or ""
    for full_name, message in _walk(scope, proto_file.messages):
        console.print(f"[bold cyan]{full_name}[/bold cyan]")
        field_table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
        field_table.add_column("#", style="green", justify="right")
        field_table.add_column("Name", style="white")
        field_table.add_column("Type", style="yellow")
        field_table.add_column("Label", style="dim")
        for f in sorted(message.fields, key=lambda f: f.number):
            type_str = f"map<{f.key_type}, {f.type}>" if f.key_type else f.type
            field_table.add_row(str(f.number), f.name, type_str, _label(f.label, f.key_type))
        console.print(field_table)
        console.print()

    enums = [(f"{scope}.{e.name}" if scope else e.name, e) for e in proto_file.enums]
    for full_name, message in _walk(scope, proto_file.messages):
        enums.extend((f"{full_name}.{e.name}", e) for e in message.enums)
    if enums:
        console.print("[bold cyan]Enums[/bold cyan]")
        enum_table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
        enum_table.add_column("Name", style="white")
        enum_table.add_column("Values", style="yellow", justify="right")
        for full_name, enum in enums:
            enum_table.add_row(full_name, str(len(enum.values)))
        console.print(enum_table)


def _object_options(longs: str, binary: str, enums: str, defaults: bool, nulls: bool) -> ToObjectOptions:
    return ToObjectOptions(longs=longs, binary=binary, enums=enums, defaults=defaults, nulls=nulls)  # type: ignore[arg-type]


def _read_input(stream: IO[bytes], hex_input: bool) -> bytes:
    data = stream.read()
    if hex_input:
        try:
            return bytes.fromhex(data.decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            raise click.ClickException("input is not valid hex") from None
    return data


@cli.command()
@_schema_option
@_include_option
@click.option("--type", "-t", "type_name", required=True, help="Full name of the record type")
@click.option("--delimited", is_flag=True, help="Input is a stream of length-prefixed records")
@click.option("--hex", "hex_input", is_flag=True, help="Input is hex text")
@click.option("--longs", type=click.Choice(["int", "str", "pair"]), default="int", help="64-bit integer format")
@click.option("--bytes", "binary", type=click.Choice(["base64", "list"]), default="base64", help="Bytes format")
@click.option("--enums", type=click.Choice(["name", "int"]), default="name", help="Enum format")
@click.option("--defaults", is_flag=True, help="Include fields equal to their default")
@click.option("--nulls", is_flag=True, help="Show unset zero-valued fields and records as null")
@click.argument("data", type=click.File("rb"), default="-")
def decode(
    schemas: tuple[str, ...],
    include_paths: tuple[str, ...],
    type_name: str,
    delimited: bool,
    hex_input: bool,
    longs: str,
    binary: str,
    enums: str,
    defaults: bool,
    nulls: bool,
    data: IO[bytes],
) -> None:
    """Decode a binary record to JSON."""
    options = _object_options(longs, binary, enums, defaults, nulls)
    payload = _read_input(data, hex_input)

    with _user_errors():
        cls = load_schema(schemas, include_paths).message_type(type_name)
        result: Any
        if delimited:
            result = [msg.to_dict(options) for msg in iter_delimited(cls, payload)]
        else:
            result = cls.decode(payload).to_dict(options)

    click.echo(json.dumps(result, indent=2))


@cli.command()
@_schema_option
@_include_option
@click.option("--type", "-t", "type_name", required=True, help="Full name of the record type")
@click.option("--delimited", is_flag=True, help="Length-prefix each record; input may be a JSON list")
@click.option("--hex", "hex_output", is_flag=True, help="Write hex text instead of binary")
@click.option("--output", "-o", "output", type=click.File("wb"), default="-", help="Output file")
@click.argument("data", type=click.File("rb"), default="-")
def encode(
    schemas: tuple[str, ...],
    include_paths: tuple[str, ...],
    type_name: str,
    delimited: bool,
    hex_output: bool,
    output: IO[bytes],
    data: IO[bytes],
) -> None:
    """Encode a JSON object to a binary record."""
    with _user_errors():
        cls = load_schema(schemas, include_paths).message_type(type_name)
        obj = json.loads(data.read())
        if delimited:
            items = obj if isinstance(obj, list) else [obj]
            encoded = b"".join(encode_delimited(cls.from_dict(item)) for item in items)
        else:
            encoded = cls.from_dict(obj).encode()

    if hex_output:
        output.write(encoded.hex().encode("ascii") + b"\n")
    else:
        output.write(encoded)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
