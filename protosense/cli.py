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

"""CLI entry point for protosense."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from protosense.analysis.analyzer import AnalyzerOptions, SemanticAnalyzer
from protosense.analysis.uris import path_to_uri, uri_to_path
from protosense.analysis.validator import SchemaValidator
from protosense.frontend.ast import Location
from protosense.loader import load_workspace


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-I",
        "--proto_path",
        "--import_path",
        dest="import_paths",
        action="append",
        type=Path,
        default=[],
        metavar="PATH",
        help="Add a directory to the import search path. Can be specified multiple times.",
    )
    common.add_argument(
        "--workspace-root",
        dest="workspace_roots",
        action="append",
        type=Path,
        default=[],
        metavar="PATH",
        help="Workspace root used for import resolution. Can be specified multiple times.",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    parser = argparse.ArgumentParser(
        prog="protosense",
        description="Protocol Buffers language intelligence",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    check_parser = subparsers.add_parser(
        "check",
        parents=[common],
        help="Report syntax and semantic errors in proto files",
    )
    check_parser.add_argument(
        "files",
        nargs="+",
        type=Path,
        metavar="FILE",
        help="Proto files to check",
    )

    symbols_parser = subparsers.add_parser(
        "symbols",
        parents=[common],
        help="List the symbols declared in proto files",
    )
    symbols_parser.add_argument(
        "files",
        nargs="+",
        type=Path,
        metavar="FILE",
        help="Proto files to list",
    )

    references_parser = subparsers.add_parser(
        "references",
        parents=[common],
        help="Find every use of a message or enum type",
    )
    references_parser.add_argument(
        "name",
        help="Simple or fully qualified type name",
    )
    references_parser.add_argument(
        "files",
        nargs="+",
        type=Path,
        metavar="FILE",
        help="Proto files to search",
    )

    return parser.parse_args(args)


def collect_import_paths(paths: List[Path]) -> List[Path]:
    """Resolve import paths, accepting comma-separated values."""
    import_paths = []
    for p in paths:
        for part in str(p).split(","):
            part = part.strip()
            if not part:
                continue
            resolved = Path(part).resolve()
            if not resolved.is_dir():
                print(f"Warning: Import path is not a directory: {part}", file=sys.stderr)
            import_paths.append(resolved)
    return import_paths


def build_analyzer(args: argparse.Namespace, import_paths: List[Path]) -> SemanticAnalyzer:
    options = AnalyzerOptions(
        import_paths=[p.as_posix() for p in import_paths],
        workspace_roots=[p.resolve().as_posix() for p in args.workspace_roots],
    )
    return SemanticAnalyzer(options)


def load_files(
    analyzer: SemanticAnalyzer, files: List[Path], import_paths: List[Path]
) -> List[Path]:
    """Load each file with its imports; return the files that loaded."""
    loaded = []
    for file_path in files:
        if not file_path.exists():
            print(f"Error: File not found: {file_path}", file=sys.stderr)
            continue
        try:
            load_workspace(analyzer, [file_path], import_paths)
        except OSError as e:
            print(f"Error reading {file_path}: {e}", file=sys.stderr)
            continue
        except ValueError as e:
            print(f"Error: {file_path}: {e}", file=sys.stderr)
            continue
        loaded.append(file_path)
    return loaded


def format_location(location: Location) -> str:
    start = location.range.start
    return f"{uri_to_path(location.uri)}:{start.line + 1}:{start.character + 1}"


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the check command."""
    import_paths = collect_import_paths(args.import_paths)
    analyzer = build_analyzer(args, import_paths)
    loaded = load_files(analyzer, args.files, import_paths)
    success = len(loaded) == len(args.files)

    for file_path in loaded:
        print(f"Checking {file_path}...")
        validator = SchemaValidator(analyzer, path_to_uri(file_path))
        if not validator.validate():
            for error in validator.errors:
                print(f"Error: {error}", file=sys.stderr)
            success = False
        for warning in validator.warnings:
            print(f"Warning: {warning}", file=sys.stderr)

    return 0 if success else 1


def cmd_symbols(args: argparse.Namespace) -> int:
    """Handle the symbols command."""
    import_paths = collect_import_paths(args.import_paths)
    analyzer = build_analyzer(args, import_paths)
    loaded = load_files(analyzer, args.files, import_paths)

    for file_path in loaded:
        print(f"{file_path}:")
        for symbol in analyzer.get_symbols_in_file(path_to_uri(file_path)):
            print(f"  {symbol.kind.value:<10} {symbol.full_name}  {format_location(symbol.location)}")

    return 0 if len(loaded) == len(args.files) else 1


def cmd_references(args: argparse.Namespace) -> int:
    """Handle the references command."""
    import_paths = collect_import_paths(args.import_paths)
    analyzer = build_analyzer(args, import_paths)
    loaded = load_files(analyzer, args.files, import_paths)

    references = analyzer.find_references(args.name)
    if not references:
        print(f"No references to {args.name}", file=sys.stderr)
    for location in references:
        print(format_location(location))

    return 0 if len(loaded) == len(args.files) else 1


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parsed = parse_args(args)

    if parsed.command is None:
        print("Usage: protosense <command> [options]", file=sys.stderr)
        print("Commands: check, symbols, references", file=sys.stderr)
        print("Use 'protosense <command> --help' for more information", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if parsed.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if parsed.command == "check":
        return cmd_check(parsed)
    if parsed.command == "symbols":
        return cmd_symbols(parsed)
    if parsed.command == "references":
        return cmd_references(parsed)

    return 0


if __name__ == "__main__":
    sys.exit(main())
