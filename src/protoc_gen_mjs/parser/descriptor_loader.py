"""Obtain FileDescriptorProtos outside of protoc's plugin protocol.

Either read a descriptor set written by
``protoc --include_imports --descriptor_set_out=...`` or run protoc to
produce one.
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from typing import List, Sequence

from google.protobuf import descriptor_pb2 as d2
from google.protobuf.message import DecodeError

from protoc_gen_mjs.errors import GenerationError


def load_descriptor_set(path: str) -> List[d2.FileDescriptorProto]:
    """Read a serialized FileDescriptorSet from disk."""
    fds = d2.FileDescriptorSet()
    try:
        with open(path, "rb") as f:
            fds.ParseFromString(f.read())
    except OSError as e:
        raise GenerationError(f"Cannot read descriptor set '{path}': {e}") from e
    except DecodeError as e:
        raise GenerationError(f"'{path}' is not a serialized FileDescriptorSet: {e}") from e
    return list(fds.file)


def _include_args(proto_paths: Sequence[str], include_dirs: Sequence[str]) -> List[str]:
    includes = list(include_dirs)
    if not includes:
        # include the directory of each file
        includes = [os.path.dirname(os.path.abspath(p)) for p in proto_paths]

    # de-dup while preserving order
    seen = set()
    args: List[str] = []
    for inc in includes:
        if inc and inc not in seen:
            seen.add(inc)
            args.extend(["-I", inc])
    return args


def compile_descriptor_set(
    proto_paths: Sequence[str],
    include_dirs: Sequence[str] = (),
) -> List[d2.FileDescriptorProto]:
    """Run protoc over proto_paths and return the descriptor set, imports included."""
    with tempfile.TemporaryDirectory() as td:
        desc_path = os.path.join(td, "descriptor_set.pb")
        cmd = (
            ["protoc", "--include_imports", f"--descriptor_set_out={desc_path}"]
            + _include_args(proto_paths, include_dirs)
            + list(proto_paths)
        )
        try:
            subprocess.run(cmd, check=True, capture_output=True)
        except FileNotFoundError as e:
            raise GenerationError(
                "'protoc' not found. Please install Protocol Buffers compiler and ensure it is in PATH."
            ) from e
        except subprocess.CalledProcessError as e:
            raise GenerationError(f"protoc failed: {e.stderr.decode('utf-8', errors='ignore')}") from e

        return load_descriptor_set(desc_path)
