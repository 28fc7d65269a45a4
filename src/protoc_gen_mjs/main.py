from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence

from google.protobuf.compiler import plugin_pb2
from google.protobuf.message import DecodeError

from protoc_gen_mjs.errors import GenerationError
from protoc_gen_mjs.models import DEFAULT_EXTENSION
from protoc_gen_mjs.parser.descriptor_loader import compile_descriptor_set, load_descriptor_set
from protoc_gen_mjs.request_processor import compile_files, parse_parameter, process


def run_plugin(stdin: BinaryIO, stdout: BinaryIO) -> int:
    """protoc plugin protocol: request on stdin, response on stdout."""
    request = plugin_pb2.CodeGeneratorRequest()
    try:
        request.ParseFromString(stdin.read())
    except DecodeError as e:
        print(f"FATAL: Failed to parse CodeGeneratorRequest from stdin: {e}", file=sys.stderr)
        return 1

    response = process(request)
    stdout.write(response.SerializeToString())
    stdout.flush()
    return 0


def _requested_files(proto_paths: Sequence[str], names: List[str]) -> List[str]:
    """Descriptor names (include-relative) matching the given .proto paths."""
    posix_paths = [Path(p).as_posix() for p in proto_paths]
    return [n for n in names if any(p == n or p.endswith("/" + n) for p in posix_paths)]


def run(
    out_dir: str,
    descriptor_set: Optional[str] = None,
    proto_paths: Sequence[str] = (),
    include_dirs: Sequence[str] = (),
    files: Sequence[str] = (),
    extension: str = DEFAULT_EXTENSION,
) -> List[str]:
    """Standalone pipeline: load descriptors, generate, write to out_dir.

    Returns list of generated file paths.
    """
    options = parse_parameter(f"extension={extension}")
    if descriptor_set:
        proto_files = load_descriptor_set(descriptor_set)
    elif proto_paths:
        proto_files = compile_descriptor_set(proto_paths, include_dirs)
    else:
        raise GenerationError("Either a descriptor set or .proto files are required")

    names = [f.name for f in proto_files]
    if files:
        requested = list(files)
    elif descriptor_set:
        requested = names
    else:
        requested = _requested_files(proto_paths, names)

    unknown = [f for f in requested if f not in names]
    if unknown:
        raise GenerationError(f"Files not in descriptor set: {', '.join(unknown)}")

    generated: List[str] = []
    for output in compile_files(proto_files, requested, options):
        out_path = os.path.join(out_dir, output.name)
        os.makedirs(os.path.dirname(out_path), exist_ok=True)
        Path(out_path).write_text(output.content, encoding="utf-8")
        generated.append(out_path)
    return generated


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="protoc-gen-mjs",
        description=(
            "Generate ES module classes with JSON projection from .proto files. "
            "Run without arguments as a protoc plugin (--plugin=protoc-gen-mjs --mjs_out=DIR)."
        ),
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--descriptor-set", help="Serialized FileDescriptorSet (protoc --include_imports --descriptor_set_out)")
    source.add_argument("--proto", nargs="+", help=".proto file(s) to compile with protoc")
    parser.add_argument("-I", "--proto-path", dest="include_dirs", action="append", default=[], help="Import search directory passed to protoc (repeatable)")
    parser.add_argument("--out", required=True, help="Output directory for generated modules")
    parser.add_argument("--file", dest="files", action="append", default=[], help="Descriptor file name to generate (repeatable; defaults to the inputs)")
    parser.add_argument("--extension", default=DEFAULT_EXTENSION, help="Output module extension (default: .mjs)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    if not argv:
        return run_plugin(sys.stdin.buffer, sys.stdout.buffer)

    args = _build_parser().parse_args(argv)
    try:
        generated = run(
            args.out,
            descriptor_set=args.descriptor_set,
            proto_paths=args.proto or (),
            include_dirs=args.include_dirs,
            files=args.files,
            extension=args.extension,
        )
    except GenerationError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1

    if not generated:
        print("No files generated.")
        return 0
    print("Generated:\n" + "\n".join(generated))
    return 0


if __name__ == "__main__":
    sys.exit(main())
