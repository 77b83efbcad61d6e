# Licensed to the Apache Software Foundation (ASF) under one
# or more contributor license agreements.  See the NOTICE file
# distributed with this work for additional information
# regarding copyright ownership.  The ASF licenses this file
# to you under the Apache License, Version 2.0 (the
# "License"); you may not use this file except in compliance
# with the License.  You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
# KIND, either express or implied.  See the License for the
# specific language governing permissions and limitations
# under the License.

"""Tests for the protosense command line."""

import tempfile
from pathlib import Path

from protosense.cli import main

VALID_PROTO = """syntax = "proto3";
package demo;

message Tag {
  string value = 1;
}

message Event {
  string id = 1;
  repeated Tag tags = 2;
}
"""


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_no_command(capsys):
    assert main([]) == 1
    assert "Usage: protosense" in capsys.readouterr().err


class TestCheck:
    """Tests for the check command."""

    def test_valid_file(self, capsys):
        """Test that a valid file passes."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write(Path(tmpdir) / "event.proto", VALID_PROTO)
            assert main(["check", str(path)]) == 0
            captured = capsys.readouterr()
            assert f"Checking {path}..." in captured.out
            assert "Error" not in captured.err

    def test_invalid_file(self, capsys):
        """Test that semantic errors fail the check."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write(
                Path(tmpdir) / "bad.proto",
                'syntax = "proto3";\nmessage M {\n  Unknown u = 1;\n}\n',
            )
            assert main(["check", str(path)]) == 1
            err = capsys.readouterr().err
            assert "Error: " in err
            assert ":3:3: Unknown type 'Unknown'" in err

    def test_missing_file(self, capsys):
        """Test that a missing file is reported."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nope.proto"
            assert main(["check", str(path)]) == 1
            assert "Error: File not found" in capsys.readouterr().err

    def test_import_path(self, capsys):
        """Test imports found through comma-separated import paths."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            write(root / "include" / "lib" / "types.proto", 'syntax = "proto3";\npackage lib;\nmessage Types {}\n')
            (root / "other").mkdir()
            main_proto = write(
                root / "src" / "main.proto",
                'syntax = "proto3";\n'
                'import "lib/types.proto";\n'
                "message M {\n  lib.Types t = 1;\n}\n",
            )

            assert main(["check", str(main_proto)]) == 1
            assert "Import 'lib/types.proto' not found" in capsys.readouterr().err

            include_arg = f"{root / 'other'},{root / 'include'}"
            assert main(["check", "-I", include_arg, str(main_proto)]) == 0


class TestSymbols:
    """Tests for the symbols command."""

    def test_lists_symbols(self, capsys):
        """Test that declarations are listed with their kinds."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write(Path(tmpdir) / "event.proto", VALID_PROTO)
            assert main(["symbols", str(path)]) == 0
            out = capsys.readouterr().out
            assert "message    demo.Event" in out
            assert "field      demo.Event.tags" in out


class TestReferences:
    """Tests for the references command."""

    def test_finds_references(self, capsys):
        """Test that each use is printed as path:line:column."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write(Path(tmpdir) / "event.proto", VALID_PROTO)
            assert main(["references", "Tag", str(path)]) == 0
            lines = capsys.readouterr().out.strip().splitlines()
            assert len(lines) == 1
            assert lines[0].endswith("event.proto:10:12")

    def test_no_references(self, capsys):
        """Test the message printed when nothing matches."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write(Path(tmpdir) / "event.proto", VALID_PROTO)
            assert main(["references", "Nothing", str(path)]) == 0
            assert "No references to Nothing" in capsys.readouterr().err
