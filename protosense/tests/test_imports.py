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

"""Tests for loading proto files and their imports from disk."""

import tempfile
from pathlib import Path

import pytest

from protosense.analysis import SemanticAnalyzer
from protosense.loader import load_workspace, resolve_import_path


def uri(path: Path) -> str:
    return path.resolve().as_uri()


class TestResolveImportPath:
    """Tests for locating an import on disk."""

    def test_relative_to_importing_file(self):
        """Test that the importing file's directory is searched first."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "common.proto").write_text("message C {}")
            main = root / "main.proto"
            main.write_text('import "common.proto";')

            resolved = resolve_import_path("common.proto", main, [])
            assert resolved == (root / "common.proto").resolve()

    def test_search_import_paths_in_order(self):
        """Test that import paths are searched in the order given."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            first = root / "first"
            second = root / "second"
            for directory in (first, second):
                (directory / "lib").mkdir(parents=True)
                (directory / "lib" / "types.proto").write_text("message T {}")
            main = root / "src" / "main.proto"
            main.parent.mkdir()
            main.write_text('import "lib/types.proto";')

            resolved = resolve_import_path("lib/types.proto", main, [first, second])
            assert resolved == (first / "lib" / "types.proto").resolve()

    def test_not_found(self):
        """Test that a missing import resolves to None."""
        with tempfile.TemporaryDirectory() as tmpdir:
            main = Path(tmpdir) / "main.proto"
            main.write_text('import "missing.proto";')
            assert resolve_import_path("missing.proto", main, []) is None


class TestLoadWorkspace:
    """Tests for loading files along with their imports."""

    def test_follows_imports(self):
        """Test that imported files are parsed and registered."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "common").mkdir()
            types = root / "common" / "types.proto"
            types.write_text('syntax = "proto3";\npackage common;\nmessage Money {}\n')
            main = root / "main.proto"
            main.write_text(
                'syntax = "proto3";\n'
                'import "common/types.proto";\n'
                "message Order {\n  common.Money total = 1;\n}\n"
            )

            analyzer = SemanticAnalyzer()
            loaded = load_workspace(analyzer, [main])

            assert loaded == [uri(main), uri(types)]
            assert analyzer.get_symbol("common.Money").uri == uri(types)
            assert analyzer.resolve_import_to_uri(uri(main), "common/types.proto") == uri(types)
            assert analyzer.resolve_type("common.Money", uri(main)) is not None

    def test_import_cycle(self):
        """Test that files importing each other are loaded once."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            a = root / "a.proto"
            b = root / "b.proto"
            a.write_text('import "b.proto";\nmessage A {}\n')
            b.write_text('import "a.proto";\nmessage B {}\n')

            analyzer = SemanticAnalyzer()
            loaded = load_workspace(analyzer, [a, b])

            assert loaded == [uri(a), uri(b)]
            assert analyzer.get_imported_file_uris(uri(b)) == [uri(a)]

    def test_well_known_import_not_read_from_disk(self):
        """Test that well-known imports are served by the bundled stubs."""
        with tempfile.TemporaryDirectory() as tmpdir:
            main = Path(tmpdir) / "main.proto"
            main.write_text('import "google/protobuf/timestamp.proto";\n')

            analyzer = SemanticAnalyzer()
            loaded = load_workspace(analyzer, [main])

            assert loaded == [uri(main)]
            resolved = analyzer.resolve_import_to_uri(uri(main), "google/protobuf/timestamp.proto")
            assert resolved == "builtin:///google/protobuf/timestamp.proto"

    def test_missing_import_is_skipped(self):
        """Test that an unresolvable import does not stop loading."""
        with tempfile.TemporaryDirectory() as tmpdir:
            main = Path(tmpdir) / "main.proto"
            main.write_text('import "missing.proto";\nmessage M {}\n')

            analyzer = SemanticAnalyzer()
            assert load_workspace(analyzer, [main]) == [uri(main)]
            assert analyzer.get_symbol("M") is not None

    def test_undecodable_import_is_skipped(self):
        """Test that an imported file that is not UTF-8 does not stop loading."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "bad.proto").write_bytes(b"message \xff\xfe {}\n")
            main = root / "main.proto"
            main.write_text('import "bad.proto";\nmessage M {}\n')

            analyzer = SemanticAnalyzer()
            assert load_workspace(analyzer, [main]) == [uri(main)]
            assert analyzer.get_symbol("M").uri == uri(main)

    def test_undecodable_root_file_raises(self):
        """Test that a root file that is not UTF-8 raises UnicodeDecodeError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            bad = Path(tmpdir) / "bad.proto"
            bad.write_bytes(b"\xff\xfe\xfa")
            with pytest.raises(UnicodeDecodeError):
                load_workspace(SemanticAnalyzer(), [bad])

    def test_import_path(self):
        """Test loading an import found through an import path."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            include = root / "include"
            (include / "lib").mkdir(parents=True)
            types = include / "lib" / "types.proto"
            types.write_text("package lib;\nmessage Types {}\n")
            main = root / "src" / "main.proto"
            main.parent.mkdir()
            main.write_text('import "lib/types.proto";\n')

            analyzer = SemanticAnalyzer()
            loaded = load_workspace(analyzer, [main], [include])
            assert loaded == [uri(main), uri(types)]

    def test_missing_root_file_raises(self):
        """Test that a root file that cannot be read raises OSError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            analyzer = SemanticAnalyzer()
            with pytest.raises(OSError):
                load_workspace(analyzer, [Path(tmpdir) / "missing.proto"])
