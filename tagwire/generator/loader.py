"""Loading schemas from .proto files and binary descriptor sets."""

import logging
from collections.abc import Iterable
from graphlib import CycleError, TopologicalSorter
from os import PathLike
from pathlib import Path

from ..proto.descriptor import FileDescriptorSet, load_file_descriptor_set
from ..proto.registry import SchemaRegistry
from ..proto.types import SchemaError
from .descriptors import build_descriptor_set
from .parser import parse
from .types import ProtoFile

logger = logging.getLogger(__name__)

StrPath = str | PathLike[str]

# Files with these suffixes hold an encoded FileDescriptorSet
BINARY_SUFFIXES = frozenset([".pb", ".desc", ".bin", ".binpb", ".protoset"])

# Imports whose types are built in
BUILTIN_IMPORTS = frozenset(["google/protobuf/descriptor.proto"])


class ImportNotFound(SchemaError):
    """Raised when an imported file is not found on any include path."""


class SchemaLoader:
    """Parses .proto files and everything they import.

    Imports are looked up on the include paths, then relative to the directory
    of the file named on the command line.
    """

    def __init__(self, include_paths: Iterable[StrPath] = ()) -> None:
        self.include_paths = [Path(p) for p in include_paths]
        self._parsed: dict[str, ProtoFile] = {}
        self._order: list[str] = []
        self._imports: dict[str, list[str]] = {}

    def add_file(self, path: StrPath) -> str:
        """Parse a file and its imports. Returns the file's import name."""
        path = Path(path)
        name = self._import_name(path)
        self._load(name, path, path.parent)
        self._sort()
        return name

    def files(self) -> list[tuple[str, ProtoFile]]:
        """Parsed files, every file after the files it imports."""
        return [(name, self._parsed[name]) for name in self._order]

    def descriptor_set(self) -> FileDescriptorSet:
        return build_descriptor_set(self.files())

    def _import_name(self, path: Path) -> str:
        resolved = path.resolve()
        for root in self.include_paths:
            try:
                return resolved.relative_to(root.resolve()).as_posix()
            except ValueError:
                continue
        return path.name

    def _find(self, name: str, root: Path) -> Path:
        for base in [*self.include_paths, root]:
            candidate = base / name
            if candidate.is_file():
                return candidate
        searched = ", ".join(str(p) for p in [*self.include_paths, root])
        raise ImportNotFound(f"{name} not found (searched {searched})")

    def _load(self, name: str, path: Path, root: Path) -> None:
        if name in self._parsed:
            return

        logger.debug("parsing %s", path)
        try:
            proto_file = parse(path.read_text(encoding="utf-8"))
        except SchemaError as exc:
            raise type(exc)(f"{path}: {exc}") from exc
        self._parsed[name] = proto_file
        self._imports[name] = []

        for imp in proto_file.imports:
            if imp.path in BUILTIN_IMPORTS:
                logger.debug("%s: %s is built in", name, imp.path)
                continue
            try:
                dep_path = self._find(imp.path, root)
            except ImportNotFound:
                if imp.modifier != "weak":
                    raise
                logger.debug("%s: skipping missing weak import %s", name, imp.path)
                continue
            self._imports[name].append(imp.path)
            self._load(imp.path, dep_path, root)

    def _sort(self) -> None:
        try:
            self._order = list(TopologicalSorter(self._imports).static_order())
        except CycleError as exc:
            raise SchemaError(f"import cycle through {' -> '.join(exc.args[1])}") from exc


def _as_paths(paths: StrPath | Iterable[StrPath]) -> list[Path]:
    if isinstance(paths, (str, PathLike)):
        return [Path(paths)]
    return [Path(p) for p in paths]


def is_binary_set(path: StrPath) -> bool:
    return Path(path).suffix in BINARY_SUFFIXES


def compile_files(
    paths: StrPath | Iterable[StrPath],
    include_paths: Iterable[StrPath] = (),
) -> FileDescriptorSet:
    """Parse .proto files and their imports into a FileDescriptorSet."""
    loader = SchemaLoader(include_paths)
    for path in _as_paths(paths):
        loader.add_file(path)
    return loader.descriptor_set()


def load_descriptor_set(
    paths: StrPath | Iterable[StrPath],
    include_paths: Iterable[StrPath] = (),
) -> FileDescriptorSet:
    """Read schemas from .proto files and encoded descriptor sets.

    Files named in more than one input are kept once, first one wins.
    """
    text_paths: list[Path] = []
    result = FileDescriptorSet()
    for path in _as_paths(paths):
        if is_binary_set(path):
            logger.debug("reading descriptor set %s", path)
            result.file.extend(FileDescriptorSet.decode(path.read_bytes()).file)
        else:
            text_paths.append(path)

    if text_paths:
        result.file.extend(compile_files(text_paths, include_paths).file)

    seen: set[str] = set()
    unique = []
    for fdp in result.file:
        if fdp.name in seen:
            continue
        seen.add(fdp.name)
        unique.append(fdp)
    result.file = unique
    return result


def load_schema(
    paths: StrPath | Iterable[StrPath],
    include_paths: Iterable[StrPath] = (),
    registry: SchemaRegistry | None = None,
) -> SchemaRegistry:
    """Load schemas into a registry of live record and enum types."""
    return load_file_descriptor_set(load_descriptor_set(paths, include_paths), registry)
