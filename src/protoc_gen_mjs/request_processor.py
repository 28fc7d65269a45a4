from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from google.protobuf import descriptor_pb2 as d2
from google.protobuf.compiler import plugin_pb2

from protoc_gen_mjs.errors import GenerationError
from protoc_gen_mjs.generator.mjs_generator import generate_module, output_file_name
from protoc_gen_mjs.models import GeneratorOptions, OutputFile
from protoc_gen_mjs.symbol_table import SymbolTable


def parse_parameter(parameter: str) -> GeneratorOptions:
    """Parse the protoc parameter string, e.g. ``extension=.js``.

    Raises GenerationError for unknown keys or malformed values.
    """
    options = GeneratorOptions()
    for item in parameter.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, value = item.partition("=")
        key = key.strip()
        if key == "extension":
            value = value.strip()
            if not sep or not value.startswith(".") or len(value) < 2:
                raise GenerationError(
                    f"Invalid extension '{value}': expected a value like '.mjs'"
                )
            options.extension = value
        else:
            raise GenerationError(f"Unknown option '{key}' in parameter '{parameter}'")
    return options


def compile_files(
    proto_files: Sequence[d2.FileDescriptorProto],
    files_to_generate: Iterable[str],
    options: Optional[GeneratorOptions] = None,
) -> List[OutputFile]:
    """Generate one module per requested file.

    proto_files is the full descriptor set, dependencies included. Output
    follows the order of proto_files, not of files_to_generate.
    """
    options = options or GeneratorOptions()
    requested = set(files_to_generate)
    symbols = SymbolTable(proto_files)

    outputs: List[OutputFile] = []
    for proto_file in proto_files:
        # Dependencies are only needed for type resolution.
        if proto_file.name not in requested:
            continue
        outputs.append(OutputFile(
            name=output_file_name(proto_file.name, options.extension),
            content=generate_module(proto_file, symbols, options),
        ))
    return outputs


def process(request: plugin_pb2.CodeGeneratorRequest) -> plugin_pb2.CodeGeneratorResponse:
    """Turn a CodeGeneratorRequest into a CodeGeneratorResponse."""
    response = plugin_pb2.CodeGeneratorResponse()
    response.supported_features = plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL

    try:
        options = parse_parameter(request.parameter)
        outputs = compile_files(request.proto_file, request.file_to_generate, options)
    except GenerationError as e:
        response.error = str(e)
        return response

    for output in outputs:
        response.file.add(name=output.name, content=output.content)
    return response
