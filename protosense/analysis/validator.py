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

"""Semantic checks over a file loaded into a SemanticAnalyzer."""

from dataclasses import dataclass
from typing import Dict, List, Optional

from protosense.analysis.analyzer import SemanticAnalyzer, qualify
from protosense.analysis.symbols import SymbolKind
from protosense.analysis.uris import uri_to_path
from protosense.frontend.ast import (
    MAP_KEY_TYPES,
    MAX_FIELD_NUMBER,
    MIN_FIELD_NUMBER,
    RESERVED_RANGE_END,
    RESERVED_RANGE_START,
    SCALAR_TYPES,
    EnumDefinition,
    ExtendDefinition,
    Location,
    MessageBody,
    Range,
    ReservedStatement,
)


@dataclass
class ValidationIssue:
    """Validation issue with optional source location."""

    message: str
    location: Optional[Location]
    severity: str

    def __str__(self) -> str:
        if not self.location:
            return self.message
        start = self.location.range.start
        path = uri_to_path(self.location.uri)
        return f"{path}:{start.line + 1}:{start.character + 1}: {self.message}"


@dataclass
class _FieldEntry:
    name: str
    number: int
    modifier: Optional[str]
    name_range: Range


class SchemaValidator:
    """Validates one file against the analyzer's view of the workspace."""

    def __init__(self, analyzer: SemanticAnalyzer, uri: str):
        self.analyzer = analyzer
        self.uri = uri
        self.errors: List[ValidationIssue] = []
        self.warnings: List[ValidationIssue] = []

    def validate(self) -> bool:
        tree = self.analyzer.get_file(self.uri)
        if tree is None:
            self._error(f"File is not loaded: {self.uri}", None)
            return False
        self.tree = tree
        self.is_proto3 = tree.syntax_version == "proto3"

        self._check_syntax_errors()
        self._check_syntax_declaration()
        self._check_imports()
        self._check_messages()
        self._check_type_references()
        return not self.errors

    def _location(self, range: Range) -> Location:
        return Location(self.uri, range)

    def _error(self, message: str, range: Optional[Range]) -> None:
        location = self._location(range) if range is not None else None
        self.errors.append(ValidationIssue(message, location, "error"))

    def _warn(self, message: str, range: Optional[Range]) -> None:
        location = self._location(range) if range is not None else None
        self.warnings.append(ValidationIssue(message, location, "warning"))

    def _check_syntax_errors(self) -> None:
        for issue in self.tree.syntax_errors:
            self._error(issue.message, issue.range)

    def _check_syntax_declaration(self) -> None:
        syntax = self.tree.syntax
        if syntax is None and self.tree.edition is None:
            self._warn("No syntax specified; defaulting to proto2", Range.empty())
        elif syntax is not None and syntax.version not in ("proto2", "proto3"):
            self._error(f"Unrecognized syntax '{syntax.version}'", syntax.range)

    def _check_imports(self) -> None:
        seen = set()
        for imp in self.tree.imports:
            if imp.path in seen:
                self._warn(f"Duplicate import '{imp.path}'", imp.path_range)
            seen.add(imp.path)
            if self.analyzer.resolve_import_to_uri(self.uri, imp.path) is None:
                self._error(f"Import '{imp.path}' not found", imp.path_range)

    def _check_reserved_usage(
        self, name: str, number: int, name_range: Range, reserved: List[ReservedStatement], owner: str
    ) -> None:
        for statement in reserved:
            if any(r.contains(number) for r in statement.ranges):
                self._error(f"{name} in {owner} uses reserved number {number}", name_range)
            if name in statement.names:
                self._error(f"Name '{name}' is reserved in {owner}", name_range)

    def _check_messages(self) -> None:
        def validate_message(message: MessageBody, parent_path: str) -> None:
            full_name = qualify(parent_path, message.name)

            nested_names: Dict[str, Range] = {}
            nested = (
                [(e.name, e.name_range) for e in message.nested_enums]
                + [(m.name, m.name_range) for m in message.nested_messages]
                + [(g.name, g.name_range) for g in message.groups]
            )
            for name, name_range in nested:
                if name in nested_names:
                    self._error(f"Duplicate nested type name in {full_name}: {name}", name_range)
                nested_names.setdefault(name, name_range)

            entries = [_FieldEntry(f.name, f.number, f.modifier, f.name_range) for f in message.fields]
            entries += [_FieldEntry(m.name, m.number, None, m.name_range) for m in message.maps]
            entries += [
                _FieldEntry(g.field_name, g.number, g.modifier, g.name_range) for g in message.groups
            ]
            for oneof in message.oneofs:
                entries += [_FieldEntry(f.name, f.number, f.modifier, f.name_range) for f in oneof.fields]
                entries += [
                    _FieldEntry(g.field_name, g.number, g.modifier, g.name_range) for g in oneof.groups
                ]
                if not oneof.fields and not oneof.groups:
                    self._error(f"Oneof {full_name}.{oneof.name} must have at least one field", oneof.name_range)
                for f in oneof.fields:
                    if f.modifier is not None:
                        self._error(f"Fields in oneofs must not have labels: {f.name}", f.name_range)

            field_numbers: Dict[int, _FieldEntry] = {}
            field_names: Dict[str, _FieldEntry] = {}
            for f in entries:
                if not MIN_FIELD_NUMBER <= f.number <= MAX_FIELD_NUMBER:
                    self._error(
                        f"Field number {f.number} of {f.name} is out of range "
                        f"[{MIN_FIELD_NUMBER}, {MAX_FIELD_NUMBER}]",
                        f.name_range,
                    )
                elif RESERVED_RANGE_START <= f.number <= RESERVED_RANGE_END:
                    self._error(
                        f"Field number {f.number} of {f.name} is in the range "
                        f"{RESERVED_RANGE_START}-{RESERVED_RANGE_END} reserved for the protobuf implementation",
                        f.name_range,
                    )
                if f.number in field_numbers:
                    self._error(
                        f"Duplicate field number {f.number} in {full_name}: "
                        f"{f.name} and {field_numbers[f.number].name}",
                        f.name_range,
                    )
                field_numbers.setdefault(f.number, f)
                if f.name in field_names:
                    self._error(f"Duplicate field name in {full_name}: {f.name}", f.name_range)
                field_names.setdefault(f.name, f)

                self._check_reserved_usage(f.name, f.number, f.name_range, message.reserved, full_name)
                for extensions in message.extensions:
                    if any(r.contains(f.number) for r in extensions.ranges):
                        self._error(
                            f"Field number {f.number} of {f.name} overlaps an extension range in {full_name}",
                            f.name_range,
                        )
                if self.is_proto3 and f.modifier == "required":
                    self._error(f"Required fields are not allowed in proto3: {f.name}", f.name_range)

            for m in message.maps:
                if m.key_type not in MAP_KEY_TYPES:
                    self._error(
                        f"Invalid map key type '{m.key_type}' for {m.name}: "
                        "must be an integral, bool or string type",
                        m.key_type_range,
                    )

            if self.is_proto3:
                for g in message.groups:
                    self._error(f"Groups are not supported in proto3: {g.name}", g.name_range)

            for nested_msg in message.nested_messages:
                validate_message(nested_msg, full_name)
            for group in message.groups:
                validate_message(group, full_name)
            for oneof in message.oneofs:
                for group in oneof.groups:
                    validate_message(group, full_name)
            for nested_enum in message.nested_enums:
                validate_enum(nested_enum, full_name)

        def validate_enum(enum: EnumDefinition, parent_path: str) -> None:
            full_name = qualify(parent_path, enum.name)
            if not enum.values:
                self._error(f"Enum {full_name} must define at least one value", enum.name_range)
                return
            if self.is_proto3 and enum.values[0].number != 0:
                self._error(
                    f"The first enum value of {full_name} must be zero in proto3",
                    enum.values[0].name_range,
                )

            allow_alias = enum.get_option("allow_alias") is True
            numbers = {}
            names = set()
            aliased = False
            for value in enum.values:
                if value.name in names:
                    self._error(f"Duplicate enum value name in {full_name}: {value.name}", value.name_range)
                names.add(value.name)
                if value.number in numbers:
                    aliased = True
                    if not allow_alias:
                        self._error(
                            f"Duplicate enum value {value.number} in {full_name}: "
                            f"{value.name} and {numbers[value.number]}; "
                            "set option allow_alias = true to allow aliases",
                            value.name_range,
                        )
                numbers.setdefault(value.number, value.name)
                self._check_reserved_usage(value.name, value.number, value.name_range, enum.reserved, full_name)
            if allow_alias and not aliased:
                self._warn(f"Enum {full_name} sets allow_alias but has no aliases", enum.name_range)

        package = self.tree.package_name
        for message in self.tree.messages:
            validate_message(message, package)
        for enum in self.tree.enums:
            validate_enum(enum, package)

    def _check_type_references(self) -> None:
        def check_type_ref(type_name: str, range: Range, scope: str) -> None:
            if type_name in SCALAR_TYPES:
                return
            if self.analyzer.resolve_type(type_name, self.uri, scope) is None:
                self._error(f"Unknown type '{type_name}'", range)

        def check_message_refs(message: MessageBody, scope: str) -> None:
            full_name = qualify(scope, message.name)
            for f in message.fields:
                check_type_ref(f.type_name, f.type_name_range, full_name)
            for m in message.maps:
                check_type_ref(m.value_type, m.value_type_range, full_name)
            for oneof in message.oneofs:
                for f in oneof.fields:
                    check_type_ref(f.type_name, f.type_name_range, full_name)
                for group in oneof.groups:
                    check_message_refs(group, full_name)
            for group in message.groups:
                check_message_refs(group, full_name)
            for nested_msg in message.nested_messages:
                check_message_refs(nested_msg, full_name)
            for extend in message.extends:
                check_extend_refs(extend, full_name)

        def check_extend_refs(extend: ExtendDefinition, scope: str) -> None:
            target = self.analyzer.resolve_type(extend.extend_type, self.uri, scope)
            if target is None:
                self._error(f"Unknown type '{extend.extend_type}'", extend.extend_type_range)
            elif target.kind != SymbolKind.MESSAGE:
                self._error(f"'{extend.extend_type}' is not a message type", extend.extend_type_range)
            for f in extend.fields:
                check_type_ref(f.type_name, f.type_name_range, scope)
            for group in extend.groups:
                check_message_refs(group, scope)

        def check_rpc_type(rpc_name: str, type_name: str, range: Range, scope: str) -> None:
            if type_name in SCALAR_TYPES:
                self._error(f"RPC {rpc_name} must use a message type, not '{type_name}'", range)
                return
            symbol = self.analyzer.resolve_type(type_name, self.uri, scope)
            if symbol is None:
                self._error(f"Unknown type '{type_name}'", range)
            elif symbol.kind != SymbolKind.MESSAGE:
                self._error(f"RPC {rpc_name} must use a message type, not enum '{type_name}'", range)

        package = self.tree.package_name
        for message in self.tree.messages:
            check_message_refs(message, package)
        for extend in self.tree.extends:
            check_extend_refs(extend, package)
        for service in self.tree.services:
            for rpc in service.rpcs:
                check_rpc_type(rpc.name, rpc.request_type, rpc.request_type_range, package)
                check_rpc_type(rpc.name, rpc.response_type, rpc.response_type_range, package)


def validate_file(analyzer: SemanticAnalyzer, uri: str) -> List[str]:
    """Validate a loaded file and return a list of error messages."""
    validator = SchemaValidator(analyzer, uri)
    validator.validate()
    return [str(err) for err in validator.errors]
