from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

from google.protobuf import descriptor_pb2

DEFAULT_EXTENSION = ".mjs"

MESSAGE = "message"
ENUM = "enum"


@dataclass(frozen=True)
class SymbolEntry:
    full_name: str
    file_name: str
    name: str
    # Package-relative dotted path, e.g. "GetPlayersResponse.Result"
    path: str
    kind: str
    descriptor: Union[descriptor_pb2.DescriptorProto, descriptor_pb2.EnumDescriptorProto, None] = None

    @property
    def identifier(self) -> str:
        """The top-level name the owning module exports for this type."""
        return self.path.split(".", 1)[0]


@dataclass
class GeneratorOptions:
    extension: str = DEFAULT_EXTENSION


@dataclass
class RenderedField:
    name: str
    property_name: str
    method_suffix: str
    number: int
    wire_type: str
    label: str
    js_type: str
    class_ref: Optional[str] = None
    is_map: bool = False

    @property
    def doc_type(self) -> str:
        return "{" + self.js_type + "}"


@dataclass
class RenderedEnumValue:
    name: str
    number: int


@dataclass
class RenderedEnum:
    identifier: str
    name: str
    full_name: str
    values: List[RenderedEnumValue] = field(default_factory=list)
    exported: bool = True
    kind: str = ENUM


@dataclass
class StaticAlias:
    name: str
    target: str


@dataclass
class RenderedMessage:
    identifier: str
    name: str
    full_name: str
    fields: List[RenderedField] = field(default_factory=list)
    aliases: List[StaticAlias] = field(default_factory=list)
    exported: bool = True
    kind: str = MESSAGE


@dataclass
class ImportSpec:
    file_name: str
    path: str
    bindings: List[str] = field(default_factory=list)


@dataclass
class EmissionUnit:
    source: str
    imports: List[ImportSpec] = field(default_factory=list)
    units: List[Union[RenderedMessage, RenderedEnum]] = field(default_factory=list)


@dataclass
class OutputFile:
    name: str
    content: str
