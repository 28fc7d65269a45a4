"""Cross-file symbol table over every file of a descriptor set.

Maps each fully-qualified type name (".pkg.Outer.Inner") to the file that
declares it and the identifiers the generated module uses for it. Files that
are only dependencies are included, since fields may reference their types.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, Optional

from google.protobuf import descriptor_pb2 as d2

from protoc_gen_mjs.models import ENUM, MESSAGE, SymbolEntry


def full_type_name(name: str, package: str, parent_full_name: str = "") -> str:
    """Build the absolute type name (leading dot) for a declared type."""
    if parent_full_name:
        return f"{parent_full_name}.{name}"
    if package:
        return f".{package}.{name}"
    return f".{name}"


def normalize_type_name(type_name: str) -> str:
    if type_name.startswith("."):
        return type_name
    return "." + type_name


class SymbolTable:
    """Read-only lookup of type name -> SymbolEntry, built once per run."""

    def __init__(self, proto_files: Iterable[d2.FileDescriptorProto]):
        self._entries: Dict[str, SymbolEntry] = {}
        for proto_file in proto_files:
            for message in proto_file.message_type:
                self._register_message(message, proto_file)
            for enum_type in proto_file.enum_type:
                self._register_enum(enum_type, proto_file)

    def _insert(self, entry: SymbolEntry) -> None:
        # Names are unique across a well-formed set; keep the first on conflict.
        self._entries.setdefault(entry.full_name, entry)

    def _register_message(
        self,
        message: d2.DescriptorProto,
        proto_file: d2.FileDescriptorProto,
        parent: Optional[SymbolEntry] = None,
    ) -> None:
        entry = SymbolEntry(
            full_name=full_type_name(message.name, proto_file.package, parent.full_name if parent else ""),
            file_name=proto_file.name,
            name=message.name,
            path=f"{parent.path}.{message.name}" if parent else message.name,
            kind=MESSAGE,
            descriptor=message,
        )
        self._insert(entry)

        for nested in message.nested_type:
            self._register_message(nested, proto_file, entry)
        for nested_enum in message.enum_type:
            self._register_enum(nested_enum, proto_file, entry)

    def _register_enum(
        self,
        enum_type: d2.EnumDescriptorProto,
        proto_file: d2.FileDescriptorProto,
        parent: Optional[SymbolEntry] = None,
    ) -> None:
        self._insert(SymbolEntry(
            full_name=full_type_name(enum_type.name, proto_file.package, parent.full_name if parent else ""),
            file_name=proto_file.name,
            name=enum_type.name,
            path=f"{parent.path}.{enum_type.name}" if parent else enum_type.name,
            kind=ENUM,
            descriptor=enum_type,
        ))

    def lookup(self, type_name: str) -> Optional[SymbolEntry]:
        """Return the entry for a type name regardless of which file owns it."""
        return self._entries.get(normalize_type_name(type_name))

    def resolve(self, type_name: str, current_file: str) -> Optional[SymbolEntry]:
        """Return the entry for a type that must be imported into current_file.

        Returns None when the type is declared in current_file itself or is not
        known at all; in both cases no import is required.
        """
        entry = self.lookup(type_name)
        if entry is None or entry.file_name == current_file:
            return None
        return entry

    def __iter__(self) -> Iterator[SymbolEntry]:
        return iter(self._entries.values())
