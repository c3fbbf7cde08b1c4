"""Tagwire schema tooling: .proto parsing, descriptor building and code generation."""

from .descriptors import build_descriptor_set as build_descriptor_set
from .descriptors import file_descriptor as file_descriptor
from .loader import compile_files as compile_files
from .loader import load_descriptor_set as load_descriptor_set
from .loader import load_schema as load_schema
from .parser import *
from .types import *
