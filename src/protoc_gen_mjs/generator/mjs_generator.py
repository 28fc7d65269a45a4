from __future__ import annotations

import posixpath
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union

from jinja2 import Environment, FileSystemLoader
from google.protobuf import descriptor_pb2 as d2

from protoc_gen_mjs.errors import GenerationError
from protoc_gen_mjs.models import (
    EmissionUnit,
    GeneratorOptions,
    ImportSpec,
    RenderedEnum,
    RenderedEnumValue,
    RenderedField,
    RenderedMessage,
    StaticAlias,
)
from protoc_gen_mjs.naming import to_lower_camel, to_upper_camel
from protoc_gen_mjs.symbol_table import SymbolTable, full_type_name
from protoc_gen_mjs.type_mapper import ImportNames, TypeMapper, flattened_identifier, is_map_entry

FieldType = d2.FieldDescriptorProto
Unit = Union[RenderedMessage, RenderedEnum]


def _get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def output_file_name(proto_file_name: str, extension: str) -> str:
    """core/math.proto -> core/math.mjs. Directories are kept unchanged."""
    root, _ = posixpath.splitext(proto_file_name)
    return root + extension


def import_path(current_file: str, target_file: str, extension: str) -> str:
    """Relative module specifier from current_file's module to target_file's."""
    target = output_file_name(target_file, extension)
    relative = posixpath.relpath(target, posixpath.dirname(current_file) or ".")
    if not relative.startswith("../"):
        relative = "./" + relative
    return relative


def _file_alias(file_name: str) -> str:
    return re.sub(r"\W", "_", posixpath.splitext(file_name)[0])


def _iter_messages(messages: Iterable[d2.DescriptorProto]) -> Iterator[d2.DescriptorProto]:
    """Walk messages depth-first, skipping synthetic map entries."""
    for message in messages:
        if is_map_entry(message):
            continue
        yield message
        yield from _iter_messages(message.nested_type)


def collect_imports(
    proto_file: d2.FileDescriptorProto,
    symbols: SymbolTable,
) -> Tuple[List[ImportSpec], ImportNames]:
    """Work out the import statements a module needs.

    Returns one ImportSpec per owning file (sorted by file name) and the
    local binding chosen for every imported identifier.
    """
    mapper = TypeMapper(symbols, proto_file)
    needed: Set[Tuple[str, str]] = set()
    for message in _iter_messages(proto_file.message_type):
        for field in message.field:
            for type_name in mapper.referenced_type_names(field):
                entry = symbols.resolve(type_name, proto_file.name)
                if entry is not None:
                    needed.add((entry.file_name, entry.identifier))

    taken = {m.name for m in proto_file.message_type} | {e.name for e in proto_file.enum_type}
    import_names: ImportNames = {}
    by_file: Dict[str, List[str]] = {}
    for file_name, identifier in sorted(needed):
        local = identifier
        if local in taken:
            local = f"{identifier}${_file_alias(file_name)}"
        taken.add(local)
        import_names[(file_name, identifier)] = local
        binding = identifier if local == identifier else f"{identifier} as {local}"
        by_file.setdefault(file_name, []).append(binding)

    return [
        ImportSpec(file_name=file_name, path="", bindings=bindings)
        for file_name, bindings in by_file.items()
    ], import_names


class ModuleBuilder:
    """Flattens one file's messages and enums into ordered top-level units."""

    def __init__(self, proto_file: d2.FileDescriptorProto, mapper: TypeMapper):
        self.proto_file = proto_file
        self.mapper = mapper
        self.units: List[Unit] = []
        self._declared: Dict[str, str] = {}

    def build(self) -> List[Unit]:
        for enum_type in self.proto_file.enum_type:
            self._add_enum(enum_type, "")
        for message in self.proto_file.message_type:
            self._add_message(message, "")
        return self.units

    def _identifier(self, full_name: str, nested: bool) -> str:
        if nested:
            identifier = flattened_identifier(full_name, self.proto_file.package)
        else:
            identifier = full_name.rsplit(".", 1)[-1]

        other = self._declared.setdefault(identifier, full_name)
        if other != full_name:
            raise GenerationError(
                f"'{other.lstrip('.')}' and '{full_name.lstrip('.')}' in {self.proto_file.name} "
                f"both flatten to '{identifier}'"
            )
        return identifier

    def _add_enum(self, enum_type: d2.EnumDescriptorProto, parent_full_name: str) -> str:
        full_name = full_type_name(enum_type.name, self.proto_file.package, parent_full_name)
        nested = bool(parent_full_name)
        identifier = self._identifier(full_name, nested)
        self.units.append(RenderedEnum(
            identifier=identifier,
            name=enum_type.name,
            full_name=full_name.lstrip("."),
            values=[RenderedEnumValue(v.name, v.number) for v in enum_type.value],
            exported=not nested,
        ))
        return identifier

    def _add_message(self, message: d2.DescriptorProto, parent_full_name: str) -> str:
        full_name = full_type_name(message.name, self.proto_file.package, parent_full_name)
        nested = bool(parent_full_name)
        identifier = self._identifier(full_name, nested)

        # Children are emitted first: the static aliases below are evaluated
        # when the parent class is defined.
        aliases: List[StaticAlias] = []
        for nested_enum in message.enum_type:
            aliases.append(StaticAlias(nested_enum.name, self._add_enum(nested_enum, full_name)))
        for nested_message in message.nested_type:
            if is_map_entry(nested_message):
                continue
            aliases.append(StaticAlias(nested_message.name, self._add_message(nested_message, full_name)))

        self.units.append(RenderedMessage(
            identifier=identifier,
            name=message.name,
            full_name=full_name.lstrip("."),
            fields=[self._render_field(f) for f in message.field],
            aliases=aliases,
            exported=not nested,
        ))
        return identifier

    def _render_field(self, field: d2.FieldDescriptorProto) -> RenderedField:
        return RenderedField(
            name=field.name,
            property_name=to_lower_camel(field.name),
            method_suffix=to_upper_camel(field.name),
            number=field.number,
            wire_type=FieldType.Type.Name(field.type),
            label=FieldType.Label.Name(field.label),
            js_type=self.mapper.map_type(field),
            class_ref=self.mapper.class_reference(field),
            is_map=self.mapper.is_map_field(field),
        )


def build_emission_unit(
    proto_file: d2.FileDescriptorProto,
    symbols: SymbolTable,
    options: Optional[GeneratorOptions] = None,
) -> EmissionUnit:
    options = options or GeneratorOptions()
    imports, import_names = collect_imports(proto_file, symbols)
    for spec in imports:
        spec.path = import_path(proto_file.name, spec.file_name, options.extension)

    mapper = TypeMapper(symbols, proto_file, import_names)
    return EmissionUnit(
        source=proto_file.name,
        imports=imports,
        units=ModuleBuilder(proto_file, mapper).build(),
    )


def generate_module(
    proto_file: d2.FileDescriptorProto,
    symbols: SymbolTable,
    options: Optional[GeneratorOptions] = None,
) -> str:
    """Generate the ES module source for one .proto file."""
    env = _get_template_env()
    template = env.get_template("module.mjs.j2")
    unit = build_emission_unit(proto_file, symbols, options)
    return template.render(
        source=unit.source,
        imports=unit.imports,
        units=unit.units,
    )
