"""Tagwire - tagged binary message codec and schema tooling."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tagwire")
except PackageNotFoundError:
    __version__ = "(local)"
