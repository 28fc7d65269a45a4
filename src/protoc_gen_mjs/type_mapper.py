from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from google.protobuf import descriptor_pb2 as d2

from protoc_gen_mjs.symbol_table import SymbolTable

FieldType = d2.FieldDescriptorProto

# Proto wire type -> JavaScript type
SCALAR_TYPE_MAP: Dict[int, str] = {
    FieldType.TYPE_DOUBLE: "number",
    FieldType.TYPE_FLOAT: "number",
    FieldType.TYPE_INT32: "number",
    FieldType.TYPE_INT64: "number",
    FieldType.TYPE_UINT32: "number",
    FieldType.TYPE_UINT64: "number",
    FieldType.TYPE_SINT32: "number",
    FieldType.TYPE_SINT64: "number",
    FieldType.TYPE_FIXED32: "number",
    FieldType.TYPE_FIXED64: "number",
    FieldType.TYPE_SFIXED32: "number",
    FieldType.TYPE_SFIXED64: "number",
    FieldType.TYPE_BOOL: "boolean",
    FieldType.TYPE_STRING: "string",
    FieldType.TYPE_BYTES: "Uint8Array",
}

# Used for references the symbol table cannot resolve.
PLACEHOLDER_TYPE = "any"

# protoc names the synthetic message behind `map<K, V> foo` "FooEntry".
MAP_ENTRY_MARKER = "Entry"
DEFAULT_MAP_TYPES: Tuple[str, str] = ("string", PLACEHOLDER_TYPE)

# Flattened names of nested types start with this; proto identifiers cannot.
FLATTENED_PREFIX = "__"

ImportNames = Dict[Tuple[str, str], str]


def flattened_identifier(full_name: str, package: str = "") -> str:
    """Return the top-level identifier a nested type is emitted under.

    .pokeworld.player.GetPlayersResponse.Result -> __GetPlayersResponse_Result
    """
    name = full_name.lstrip(".")
    if package and name.startswith(package + "."):
        name = name[len(package) + 1:]
    return FLATTENED_PREFIX + name.replace(".", "_")


def resolve_message_type_name(type_name: str, current_file: d2.FileDescriptorProto) -> str:
    """Name a type declared in current_file the way the module refers to it.

    Nested types get their flattened identifier; top-level types keep their
    simple name.
    """
    name = type_name[1:] if type_name.startswith(".") else type_name
    prefix = current_file.package + "." if current_file.package else ""
    if name.startswith(prefix):
        without_package = name[len(prefix):]
        if "." in without_package:
            return flattened_identifier(name, current_file.package)
    return name.split(".")[-1]


def is_map_entry(message: d2.DescriptorProto) -> bool:
    # protoc marks every entry it synthesizes for a map field.
    return message.options.map_entry


def is_repeated(field: d2.FieldDescriptorProto) -> bool:
    return field.label == FieldType.LABEL_REPEATED


class TypeMapper:
    """Maps fields of one file to JSDoc type expressions.

    import_names maps (owning file, exported identifier) to the local binding
    the module imports it under; identifiers absent from it are used as-is.
    """

    def __init__(
        self,
        symbols: SymbolTable,
        current_file: d2.FileDescriptorProto,
        import_names: Optional[ImportNames] = None,
    ):
        self.symbols = symbols
        self.current_file = current_file
        self.import_names: ImportNames = import_names or {}

    def map_type(self, field: d2.FieldDescriptorProto) -> str:
        if is_repeated(field):
            if self.is_map_field(field):
                key_type, value_type = self.map_key_value_types(field)
                return f"Object<{key_type}, {value_type}>"
            return f"{self.base_type(field)}[]"
        return self.base_type(field)

    def base_type(self, field: d2.FieldDescriptorProto) -> str:
        if field.type in SCALAR_TYPE_MAP:
            return SCALAR_TYPE_MAP[field.type]
        if field.type in (FieldType.TYPE_MESSAGE, FieldType.TYPE_ENUM):
            return self.type_reference(field.type_name)
        return PLACEHOLDER_TYPE

    def type_reference(self, type_name: str) -> str:
        """Return the JavaScript expression naming a message or enum type."""
        entry = self.symbols.lookup(type_name)
        if entry is None:
            return PLACEHOLDER_TYPE
        if entry.file_name == self.current_file.name:
            return resolve_message_type_name(entry.full_name, self.current_file)
        local = self.import_names.get((entry.file_name, entry.identifier), entry.identifier)
        # Nested types of another module are reached through the static
        # aliases on its exported root class.
        return local + entry.path[len(entry.identifier):]

    def class_reference(self, field: d2.FieldDescriptorProto) -> Optional[str]:
        """The class a message field deserializes into, if it has one."""
        if field.type != FieldType.TYPE_MESSAGE or self.is_map_field(field):
            return None
        ref = self.type_reference(field.type_name)
        return None if ref == PLACEHOLDER_TYPE else ref

    def is_map_field(self, field: d2.FieldDescriptorProto) -> bool:
        if field.type != FieldType.TYPE_MESSAGE or not is_repeated(field):
            return False
        entry = self.symbols.lookup(field.type_name)
        if entry is not None and isinstance(entry.descriptor, d2.DescriptorProto):
            return is_map_entry(entry.descriptor)
        return MAP_ENTRY_MARKER in field.type_name

    def _map_entry_fields(
        self, field: d2.FieldDescriptorProto
    ) -> Optional[Tuple[d2.FieldDescriptorProto, d2.FieldDescriptorProto]]:
        entry = self.symbols.lookup(field.type_name)
        if entry is None or not isinstance(entry.descriptor, d2.DescriptorProto):
            return None
        by_name = {f.name: f for f in entry.descriptor.field}
        if "key" not in by_name or "value" not in by_name:
            return None
        return by_name["key"], by_name["value"]

    def map_key_value_types(self, field: d2.FieldDescriptorProto) -> Tuple[str, str]:
        entry_fields = self._map_entry_fields(field)
        if entry_fields is None:
            return DEFAULT_MAP_TYPES
        key, value = entry_fields
        return self.base_type(key), self.base_type(value)

    def referenced_type_names(self, field: d2.FieldDescriptorProto) -> List[str]:
        """Type names this field needs in scope; maps contribute their value type."""
        if self.is_map_field(field):
            entry_fields = self._map_entry_fields(field)
            if entry_fields is None:
                return []
            field = entry_fields[1]
        if field.type in (FieldType.TYPE_MESSAGE, FieldType.TYPE_ENUM):
            return [field.type_name]
        return []
