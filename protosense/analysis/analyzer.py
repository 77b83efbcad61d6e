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

"""Multi-file symbol table for proto workspaces.

The analyzer keeps one :class:`FileRecord` per URI and two indices over the
declarations of every loaded file: by fully qualified name and by simple
name. ``update_file`` replaces a file's contribution wholesale, so the
indices always reflect the latest tree of each file.

All queries are total: unknown files, unresolved types and empty result sets
come back as ``None`` or ``[]``.
"""

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

from protosense.analysis.symbols import FileRecord, ImportResolution, Symbol, SymbolKind
from protosense.analysis.uris import (
    basename,
    dirname,
    is_suffix_at_boundary,
    normalize_path,
    relative_to,
    uri_to_path,
)
from protosense.frontend.ast import (
    SCALAR_TYPES,
    EnumDefinition,
    ExtendDefinition,
    GroupFieldDefinition,
    Location,
    MessageBody,
    ProtoFile,
    Range,
    ServiceDefinition,
)
from protosense.frontend.parser import parse
from protosense.wellknown import WELL_KNOWN_PROTOS, builtin_path, builtin_uri, is_builtin_uri

logger = logging.getLogger(__name__)


@dataclass
class AnalyzerOptions:
    """Options for a :class:`SemanticAnalyzer`.

    ``path_mappings`` maps a virtual import prefix (such as a Go-style module
    path) to the directory it stands for.
    """

    import_paths: List[str] = field(default_factory=list)
    workspace_roots: List[str] = field(default_factory=list)
    path_mappings: Dict[str, str] = field(default_factory=dict)
    include_builtins: bool = True


def qualify(scope: str, name: str) -> str:
    return f"{scope}.{name}" if scope else name


class SemanticAnalyzer:
    """Symbol table and import graph over a set of parsed proto files."""

    def __init__(self, options: Optional[AnalyzerOptions] = None):
        options = options or AnalyzerOptions()
        self._files: Dict[str, FileRecord] = {}
        self._by_full_name: Dict[str, Symbol] = {}
        self._by_simple_name: Dict[str, List[Symbol]] = {}
        self._import_cache: Dict[Tuple[str, str], Optional[str]] = {}
        self._import_paths: List[str] = []
        self._workspace_roots: List[str] = []
        self._path_mappings: Dict[str, str] = {}
        self.set_import_paths(options.import_paths)
        self.set_workspace_roots(options.workspace_roots)
        self.set_path_mappings(options.path_mappings)
        if options.include_builtins:
            self._load_builtins()

    def _load_builtins(self) -> None:
        for path, source in WELL_KNOWN_PROTOS.items():
            uri = builtin_uri(path)
            self.update_file(uri, parse(source, uri), logical_path=path)

    # Configuration

    def set_import_paths(self, paths: List[str]) -> None:
        self._import_paths = [normalize_path(p) for p in paths]
        self._import_cache.clear()

    def set_workspace_roots(self, roots: List[str]) -> None:
        self._workspace_roots = [normalize_path(r) for r in roots]
        self._import_cache.clear()

    def set_path_mappings(self, mappings: Dict[str, str]) -> None:
        self._path_mappings = {
            normalize_path(virtual).strip("/"): normalize_path(actual)
            for virtual, actual in mappings.items()
        }
        self._import_cache.clear()

    def get_import_paths(self) -> List[str]:
        return list(self._import_paths)

    def get_workspace_roots(self) -> List[str]:
        return list(self._workspace_roots)

    # File registration

    def update_file(self, uri: str, tree: ProtoFile, logical_path: Optional[str] = None) -> None:
        """Register ``tree`` as the current contents of ``uri``."""
        self._remove_symbols(uri)
        record = FileRecord(
            uri=uri,
            tree=tree,
            imports=[imp.path for imp in tree.imports],
            logical_path=logical_path or builtin_path(uri),
        )
        self._files[uri] = record
        self._import_cache.clear()
        _SymbolCollector(self, record).collect()
        logger.debug("Registered %s with %d symbols", uri, len(record.symbols))

    def remove_file(self, uri: str) -> None:
        self._remove_symbols(uri)
        if self._files.pop(uri, None) is not None:
            self._import_cache.clear()
            logger.debug("Removed %s", uri)

    def _add_symbol(self, record: FileRecord, symbol: Symbol) -> None:
        record.symbols.append(symbol)
        self._by_full_name[symbol.full_name] = symbol
        self._by_simple_name.setdefault(symbol.name, []).append(symbol)

    def _remove_symbols(self, uri: str) -> None:
        record = self._files.get(uri)
        if record is None:
            return
        removed = {id(symbol) for symbol in record.symbols}
        # One pass per distinct simple name, however many symbols share it.
        for name in {symbol.name for symbol in record.symbols}:
            entries = self._by_simple_name.get(name)
            if entries is None:
                continue
            kept = [s for s in entries if id(s) not in removed]
            if kept:
                self._by_simple_name[name] = kept
            else:
                del self._by_simple_name[name]

        lost = [s for s in record.symbols if self._by_full_name.get(s.full_name) is s]
        for symbol in lost:
            del self._by_full_name[symbol.full_name]
        # Another file may declare the same name; the earliest one takes over.
        lost_full_names = {symbol.full_name for symbol in lost}
        for name in {symbol.name for symbol in lost}:
            for other in self._by_simple_name.get(name, []):
                if other.full_name in lost_full_names:
                    self._by_full_name.setdefault(other.full_name, other)
        record.symbols = []

    # Lookup

    def get_file(self, uri: str) -> Optional[ProtoFile]:
        record = self._files.get(uri)
        return record.tree if record else None

    def get_file_record(self, uri: str) -> Optional[FileRecord]:
        return self._files.get(uri)

    def get_all_files(self) -> Dict[str, ProtoFile]:
        return {uri: record.tree for uri, record in self._files.items()}

    def get_symbol(self, full_name: str) -> Optional[Symbol]:
        return self._by_full_name.get(full_name.lstrip("."))

    def get_all_symbols(self) -> List[Symbol]:
        return [symbol for record in self._files.values() for symbol in record.symbols]

    def get_symbols_in_file(self, uri: str) -> List[Symbol]:
        record = self._files.get(uri)
        return list(record.symbols) if record else []

    def get_accessible_symbols(self, uri: str) -> List[Symbol]:
        """Symbols of ``uri`` followed by those of its transitive imports."""
        symbols: List[Symbol] = []
        for visible_uri in self._visible_uris(uri):
            symbols.extend(self.get_symbols_in_file(visible_uri))
        return symbols

    def get_type_completions(self, uri: str, scope: Optional[str] = None) -> List[Symbol]:
        """Messages and enums, those reachable from ``uri`` first.

        Within the reachable set, types declared along ``scope`` (or the
        file's package) come before the rest.
        """
        if scope is None:
            record = self._files.get(uri)
            scope = record.package if record else ""
        scopes = set()
        parts = scope.split(".") if scope else []
        while parts:
            scopes.add(".".join(parts))
            parts.pop()

        accessible = [s for s in self.get_accessible_symbols(uri) if s.kind.is_type]
        local = [s for s in accessible if (s.container_name or "") in scopes]
        ordered = local + accessible + [s for s in self.get_all_symbols() if s.kind.is_type]

        seen: Set[str] = set()
        completions = []
        for symbol in ordered:
            if symbol.full_name in seen:
                continue
            seen.add(symbol.full_name)
            completions.append(symbol)
        return completions

    # Imports

    def resolve_import_to_uri(self, from_uri: str, import_path: str) -> Optional[str]:
        key = (from_uri, import_path)
        if key not in self._import_cache:
            resolved = self._resolve_import(from_uri, normalize_path(import_path))
            if resolved is None:
                logger.debug("Import %r from %s is unresolved", import_path, from_uri)
            self._import_cache[key] = resolved
        return self._import_cache[key]

    def _resolve_import(self, from_uri: str, import_path: str) -> Optional[str]:
        for uri, record in self._files.items():
            if record.logical_path == import_path:
                return uri

        disk_files = [
            (uri, uri_to_path(uri)) for uri in self._files if not is_builtin_uri(uri)
        ]

        candidates = []
        for virtual, actual in self._path_mappings.items():
            rest = relative_to(import_path, virtual)
            if rest is not None:
                candidates.append(posixpath.join(actual, rest))
        from_dir = dirname(uri_to_path(from_uri))
        for root in self._import_paths + self._workspace_roots + [from_dir]:
            candidates.append(posixpath.normpath(posixpath.join(root, import_path)))
        for candidate in candidates:
            for uri, path in disk_files:
                if path == candidate:
                    return uri

        for uri, path in disk_files:
            if is_suffix_at_boundary(path, import_path):
                return uri

        name = basename(import_path)
        for uri, path in disk_files:
            if basename(path) == name:
                return uri
        return None

    def get_imported_file_uris(self, uri: str) -> List[str]:
        record = self._files.get(uri)
        if record is None:
            return []
        resolved = []
        for import_path in record.imports:
            target = self.resolve_import_to_uri(uri, import_path)
            if target is not None and target not in resolved:
                resolved.append(target)
        return resolved

    def get_imports_with_resolutions(self, uri: str) -> List[ImportResolution]:
        record = self._files.get(uri)
        if record is None:
            return []
        return [
            ImportResolution(path, self.resolve_import_to_uri(uri, path))
            for path in record.imports
        ]

    def _visible_uris(self, uri: str) -> List[str]:
        """``uri`` and every file it imports, transitively, in visit order."""
        visited: List[str] = []
        stack = [uri]
        while stack:
            current = stack.pop()
            if current in visited or current not in self._files:
                continue
            visited.append(current)
            stack.extend(reversed(self.get_imported_file_uris(current)))
        return visited

    def get_import_path_for_file(self, from_uri: str, to_uri: str) -> str:
        """The import string ``from_uri`` should use to import ``to_uri``."""
        path = builtin_path(to_uri)
        if path is not None:
            return path
        record = self._files.get(to_uri)
        if record is not None and record.logical_path:
            return record.logical_path

        target = uri_to_path(to_uri)
        google = target.rfind("/google/")
        if google >= 0:
            return target[google + 1 :]

        for virtual, actual in self._path_mappings.items():
            rest = relative_to(target, actual)
            if rest is not None:
                return f"{virtual}/{rest}"

        best: Optional[str] = None
        for root in self._import_paths + self._workspace_roots:
            rest = relative_to(target, root)
            if rest is not None and (best is None or len(rest) < len(best)):
                best = rest
        if best is not None:
            return best

        from_dir = dirname(uri_to_path(from_uri))
        if from_dir and target.startswith("/") == from_dir.startswith("/"):
            relative = posixpath.relpath(target, from_dir)
            if not relative.startswith(".."):
                return relative
        return basename(target)

    # Type resolution

    def _lookup_type(self, full_name: str) -> Optional[Symbol]:
        symbol = self._by_full_name.get(full_name)
        if symbol is not None and symbol.kind.is_type:
            return symbol
        if symbol is not None:
            # A field may share its full name with a nested type.
            for other in self._by_simple_name.get(symbol.name, []):
                if other.full_name == full_name and other.kind.is_type:
                    return other
        return None

    def resolve_type(
        self, type_name: str, from_uri: str, scope: Optional[str] = None
    ) -> Optional[Symbol]:
        """Resolve a type reference written in ``from_uri`` inside ``scope``.

        The scope defaults to the file's package. Lookup walks the scope
        outward one segment at a time, then treats the name as fully
        qualified, then falls back to visible symbols with a matching
        simple name. Scalars never resolve.
        """
        if not type_name or type_name in SCALAR_TYPES:
            return None
        if type_name.startswith("."):
            return self._lookup_type(type_name[1:])

        if scope is None:
            record = self._files.get(from_uri)
            scope = record.package if record else ""
        parts = scope.split(".") if scope else []
        while parts:
            symbol = self._lookup_type(f"{'.'.join(parts)}.{type_name}")
            if symbol is not None:
                return symbol
            parts.pop()

        symbol = self._lookup_type(type_name)
        if symbol is not None:
            return symbol

        simple = type_name.rsplit(".", 1)[-1]
        matches = [
            s
            for s in self._by_simple_name.get(simple, [])
            if s.kind.is_type and (s.full_name == type_name or s.full_name.endswith("." + type_name))
        ]
        if matches:
            for s in matches:
                if s.uri == from_uri:
                    return s
            visible = set(self._visible_uris(from_uri))
            for s in matches:
                if s.uri in visible:
                    return s
            for s in matches:
                if is_builtin_uri(s.uri):
                    return s
        logger.debug("Could not resolve type %r from %s", type_name, from_uri)
        return None

    # References

    def find_references(self, type_name: str) -> List[Location]:
        """Every usage site of a type across loaded workspace files.

        A dotted name targets exactly that type; a simple name targets every
        type with that simple name. A site matches when it resolves to a
        target, or when it does not resolve and its text names the type.
        Declarations are not included.
        """
        name = type_name.lstrip(".")
        if not name:
            return []
        if "." in name:
            targets = {name}
        else:
            targets = {s.full_name for s in self._by_simple_name.get(name, []) if s.kind.is_type}
            targets.add(name)

        references = []
        for uri, record in self._files.items():
            if is_builtin_uri(uri):
                continue
            for text, text_range, scope in _reference_sites(record.tree):
                if text in SCALAR_TYPES:
                    continue
                resolved = self.resolve_type(text, uri, scope)
                if resolved is not None:
                    matched = resolved.full_name in targets
                else:
                    literal = text.lstrip(".")
                    matched = (
                        literal == name
                        or literal.endswith("." + name)
                        or name.endswith("." + literal)
                    )
                if matched:
                    references.append(Location(uri, text_range))
        return references


class _SymbolCollector:
    """Walks one tree and registers its declarations."""

    def __init__(self, analyzer: SemanticAnalyzer, record: FileRecord):
        self.analyzer = analyzer
        self.record = record

    def add(
        self,
        name: str,
        full_name: str,
        kind: SymbolKind,
        name_range: Range,
        container: str,
        documentation: Optional[str],
    ) -> None:
        symbol = Symbol(
            name=name,
            full_name=full_name,
            kind=kind,
            location=Location(self.record.uri, name_range),
            container_name=container or None,
            documentation=documentation,
        )
        self.analyzer._add_symbol(self.record, symbol)

    def collect(self) -> None:
        tree = self.record.tree
        package = tree.package_name
        for message in tree.messages:
            self.message(message, package)
        for enum in tree.enums:
            self.enum(enum, package)
        for service in tree.services:
            self.service(service, package)
        for extend in tree.extends:
            self.extend(extend, package)

    def message(self, body: MessageBody, scope: str) -> None:
        full_name = qualify(scope, body.name)
        self.add(body.name, full_name, SymbolKind.MESSAGE, body.name_range, scope, body.comments)

        for f in body.fields:
            self.add(f.name, qualify(full_name, f.name), SymbolKind.FIELD, f.name_range, full_name, f.comments)
        for m in body.maps:
            self.add(m.name, qualify(full_name, m.name), SymbolKind.FIELD, m.name_range, full_name, m.comments)
        for group in body.groups:
            self.group(group, full_name)
        for oneof in body.oneofs:
            self.add(
                oneof.name,
                qualify(full_name, oneof.name),
                SymbolKind.ONEOF,
                oneof.name_range,
                full_name,
                oneof.comments,
            )
            # Oneof members live in the message's scope.
            for f in oneof.fields:
                self.add(f.name, qualify(full_name, f.name), SymbolKind.FIELD, f.name_range, full_name, f.comments)
            for group in oneof.groups:
                self.group(group, full_name)
        for nested in body.nested_messages:
            self.message(nested, full_name)
        for enum in body.nested_enums:
            self.enum(enum, full_name)
        for extend in body.extends:
            self.extend(extend, full_name)

    def group(self, group: GroupFieldDefinition, scope: str) -> None:
        self.message(group, scope)
        self.add(
            group.field_name,
            qualify(scope, group.field_name),
            SymbolKind.FIELD,
            group.name_range,
            scope,
            group.comments,
        )

    def enum(self, enum: EnumDefinition, scope: str) -> None:
        full_name = qualify(scope, enum.name)
        self.add(enum.name, full_name, SymbolKind.ENUM, enum.name_range, scope, enum.comments)
        for value in enum.values:
            self.add(
                value.name,
                qualify(full_name, value.name),
                SymbolKind.ENUM_VALUE,
                value.name_range,
                full_name,
                value.comments,
            )

    def service(self, service: ServiceDefinition, scope: str) -> None:
        full_name = qualify(scope, service.name)
        self.add(service.name, full_name, SymbolKind.SERVICE, service.name_range, scope, service.comments)
        for rpc in service.rpcs:
            self.add(rpc.name, qualify(full_name, rpc.name), SymbolKind.RPC, rpc.name_range, full_name, rpc.comments)

    def extend(self, extend: ExtendDefinition, scope: str) -> None:
        # Extension fields are declared in the enclosing scope, not the extendee.
        for f in extend.fields:
            self.add(f.name, qualify(scope, f.name), SymbolKind.FIELD, f.name_range, scope, f.comments)
        for group in extend.groups:
            self.group(group, scope)


def _reference_sites(tree: ProtoFile) -> Iterator[Tuple[str, Range, str]]:
    """Yield ``(type text, range, resolution scope)`` for every type reference."""
    package = tree.package_name
    for message in tree.messages:
        yield from _message_sites(message, package)
    for service in tree.services:
        for rpc in service.rpcs:
            yield rpc.request_type, rpc.request_type_range, package
            yield rpc.response_type, rpc.response_type_range, package
    for extend in tree.extends:
        yield from _extend_sites(extend, package)


def _message_sites(body: MessageBody, scope: str) -> Iterator[Tuple[str, Range, str]]:
    full_name = qualify(scope, body.name)
    for f in body.fields:
        yield f.type_name, f.type_name_range, full_name
    for m in body.maps:
        yield m.value_type, m.value_type_range, full_name
    for oneof in body.oneofs:
        for f in oneof.fields:
            yield f.type_name, f.type_name_range, full_name
        for group in oneof.groups:
            yield from _message_sites(group, full_name)
    for group in body.groups:
        yield from _message_sites(group, full_name)
    for nested in body.nested_messages:
        yield from _message_sites(nested, full_name)
    for extend in body.extends:
        yield from _extend_sites(extend, full_name)


def _extend_sites(extend: ExtendDefinition, scope: str) -> Iterator[Tuple[str, Range, str]]:
    yield extend.extend_type, extend.extend_type_range, scope
    for f in extend.fields:
        yield f.type_name, f.type_name_range, scope
    for group in extend.groups:
        yield from _message_sites(group, scope)
