import io
import subprocess
import sys

import pytest
from google.protobuf import descriptor_pb2, text_format
from google.protobuf.compiler import plugin_pb2

from protoc_gen_mjs.errors import GenerationError
from protoc_gen_mjs.main import _requested_files, main, run, run_plugin
from protoc_gen_mjs.parser.descriptor_loader import compile_descriptor_set, load_descriptor_set


def _file(text: str) -> descriptor_pb2.FileDescriptorProto:
    return text_format.Parse(text, descriptor_pb2.FileDescriptorProto())


MATH_PROTO = """
name: "core/math.proto"
package: "pokeworld.math"
message_type {
  name: "Vector3"
  field { name: "x" number: 1 label: LABEL_OPTIONAL type: TYPE_FLOAT }
}
"""

ENTITY_PROTO = """
name: "entity.proto"
package: "pokeworld.entity"
dependency: "core/math.proto"
message_type {
  name: "EntityInfo"
  field { name: "position" number: 1 label: LABEL_OPTIONAL type: TYPE_MESSAGE type_name: ".pokeworld.math.Vector3" }
}
"""


@pytest.fixture
def descriptor_set_path(tmp_path):
    fds = descriptor_pb2.FileDescriptorSet()
    fds.file.extend([_file(MATH_PROTO), _file(ENTITY_PROTO)])
    path = tmp_path / "set.pb"
    path.write_bytes(fds.SerializeToString())
    return str(path)


def _request_bytes(*to_generate):
    request = plugin_pb2.CodeGeneratorRequest()
    request.proto_file.extend([_file(MATH_PROTO), _file(ENTITY_PROTO)])
    request.file_to_generate.extend(to_generate)
    return request.SerializeToString()


class TestRunPlugin:
    def test_writes_response_quietly(self, capsys):
        stdout = io.BytesIO()
        rc = run_plugin(io.BytesIO(_request_bytes("entity.proto")), stdout)

        assert rc == 0
        response = plugin_pb2.CodeGeneratorResponse.FromString(stdout.getvalue())
        assert [f.name for f in response.file] == ["entity.mjs"]
        assert 'import { Vector3 } from "./core/math.mjs";' in response.file[0].content
        assert capsys.readouterr().err == ""

    def test_invalid_request(self, capsys):
        stdout = io.BytesIO()
        rc = run_plugin(io.BytesIO(b"\x0a\x05ab"), stdout)

        assert rc == 1
        assert stdout.getvalue() == b""
        assert "FATAL: Failed to parse CodeGeneratorRequest" in capsys.readouterr().err

    def test_main_without_arguments_is_plugin_mode(self, monkeypatch):
        stdin = io.TextIOWrapper(io.BytesIO(_request_bytes("core/math.proto")))
        stdout = io.TextIOWrapper(io.BytesIO())
        monkeypatch.setattr(sys, "stdin", stdin)
        monkeypatch.setattr(sys, "stdout", stdout)

        assert main([]) == 0
        response = plugin_pb2.CodeGeneratorResponse.FromString(stdout.buffer.getvalue())
        assert [f.name for f in response.file] == ["core/math.mjs"]


class TestDescriptorLoader:
    def test_load(self, descriptor_set_path):
        files = load_descriptor_set(descriptor_set_path)
        assert [f.name for f in files] == ["core/math.proto", "entity.proto"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(GenerationError, match="Cannot read descriptor set"):
            load_descriptor_set(str(tmp_path / "missing.pb"))

    def test_garbage(self, tmp_path):
        path = tmp_path / "garbage.pb"
        path.write_bytes(b"\x0a\x05ab")
        with pytest.raises(GenerationError, match="not a serialized FileDescriptorSet"):
            load_descriptor_set(str(path))

    def test_protoc_missing(self, monkeypatch):
        def fake_run(*args, **kwargs):
            raise FileNotFoundError("protoc")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(GenerationError, match="'protoc' not found"):
            compile_descriptor_set(["entity.proto"])

    def test_protoc_failure(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(1, cmd, stderr=b"entity.proto: File not found.")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(GenerationError, match="protoc failed: entity.proto: File not found."):
            compile_descriptor_set(["entity.proto"], ["protos"])

    def test_protoc_command_line(self, monkeypatch, tmp_path):
        seen = {}

        def fake_run(cmd, **kwargs):
            seen["cmd"] = cmd
            out = next(a for a in cmd if a.startswith("--descriptor_set_out="))
            fds = descriptor_pb2.FileDescriptorSet()
            fds.file.append(_file(MATH_PROTO))
            with open(out.split("=", 1)[1], "wb") as f:
                f.write(fds.SerializeToString())

        monkeypatch.setattr(subprocess, "run", fake_run)
        files = compile_descriptor_set(["protos/core/math.proto"], ["protos", "protos"])

        assert [f.name for f in files] == ["core/math.proto"]
        assert seen["cmd"][:2] == ["protoc", "--include_imports"]
        assert seen["cmd"][3:] == ["-I", "protos", "protos/core/math.proto"]


class TestRun:
    def test_generates_every_file_in_set(self, descriptor_set_path, tmp_path):
        out = tmp_path / "out"
        generated = run(str(out), descriptor_set=descriptor_set_path)

        assert [p.replace("\\", "/") for p in generated] == [
            f"{out.as_posix()}/core/math.mjs",
            f"{out.as_posix()}/entity.mjs",
        ]
        assert "export class Vector3 {" in (out / "core" / "math.mjs").read_text(encoding="utf-8")

    def test_selected_file_and_extension(self, descriptor_set_path, tmp_path):
        out = tmp_path / "out"
        run(str(out), descriptor_set=descriptor_set_path, files=["entity.proto"], extension=".js")

        content = (out / "entity.js").read_text(encoding="utf-8")
        assert 'from "./core/math.js";' in content
        assert not (out / "core").exists()

    def test_unknown_file(self, descriptor_set_path, tmp_path):
        with pytest.raises(GenerationError, match="Files not in descriptor set: nope.proto"):
            run(str(tmp_path), descriptor_set=descriptor_set_path, files=["nope.proto"])

    def test_requires_input(self, tmp_path):
        with pytest.raises(GenerationError):
            run(str(tmp_path))

    def test_requested_files_match_proto_paths(self):
        names = ["core/math.proto", "entity.proto"]
        assert _requested_files(["protos/core/math.proto"], names) == ["core/math.proto"]
        assert _requested_files(["entity.proto"], names) == ["entity.proto"]
        assert _requested_files(["other/thing.proto"], names) == []


class TestMain:
    def test_success(self, descriptor_set_path, tmp_path, capsys):
        rc = main(["--descriptor-set", descriptor_set_path, "--out", str(tmp_path / "out")])

        assert rc == 0
        assert "Generated:" in capsys.readouterr().out
        assert (tmp_path / "out" / "entity.mjs").exists()

    def test_unknown_file_is_fatal(self, descriptor_set_path, tmp_path, capsys):
        rc = main([
            "--descriptor-set", descriptor_set_path,
            "--out", str(tmp_path),
            "--file", "nope.proto",
        ])

        assert rc == 1
        assert "FATAL: Files not in descriptor set: nope.proto" in capsys.readouterr().err

    def test_bad_extension_is_fatal(self, descriptor_set_path, tmp_path, capsys):
        rc = main(["--descriptor-set", descriptor_set_path, "--out", str(tmp_path), "--extension", "mjs"])

        assert rc == 1
        assert "FATAL: Invalid extension" in capsys.readouterr().err

    def test_missing_out_is_usage_error(self, descriptor_set_path):
        with pytest.raises(SystemExit):
            main(["--descriptor-set", descriptor_set_path])
