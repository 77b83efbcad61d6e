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

"""Syntax tree nodes for proto files."""

from dataclasses import dataclass, field
from enum import Enum as PyEnum
from typing import ClassVar, List, Optional, Union as TypingUnion


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line/character position."""

    line: int
    character: int


@dataclass(frozen=True)
class Range:
    """Source span from the first to the last character of a construct."""

    start: Position
    end: Position

    @classmethod
    def empty(cls) -> "Range":
        return cls(Position(0, 0), Position(0, 0))

    def contains(self, position: Position) -> bool:
        return self.start <= position <= self.end

    def __repr__(self) -> str:
        return (
            f"Range({self.start.line}:{self.start.character}"
            f"-{self.end.line}:{self.end.character})"
        )


@dataclass(frozen=True)
class Location:
    """A range inside a particular document."""

    uri: str
    range: Range


@dataclass
class SyntaxIssue:
    """A syntax error recorded while recovering from malformed input."""

    message: str
    range: Range

    def __str__(self) -> str:
        return f"{self.range.start.line + 1}:{self.range.start.character + 1}: {self.message}"


class NodeKind(PyEnum):
    """Discriminator for syntax tree nodes."""

    FILE = "file"
    SYNTAX = "syntax"
    EDITION = "edition"
    PACKAGE = "package"
    IMPORT = "import"
    OPTION = "option"
    MESSAGE = "message"
    FIELD = "field"
    MAP_FIELD = "map"
    GROUP_FIELD = "group"
    ONEOF = "oneof"
    ENUM = "enum"
    ENUM_VALUE = "enum_value"
    SERVICE = "service"
    RPC = "rpc"
    EXTEND = "extend"
    RESERVED = "reserved"
    EXTENSIONS = "extensions"


OptionValue = TypingUnion[str, int, float, bool]


@dataclass
class SyntaxStatement:
    version: str
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.SYNTAX


@dataclass
class EditionStatement:
    edition: str
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.EDITION


@dataclass
class PackageStatement:
    name: str
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.PACKAGE


@dataclass
class ImportStatement:
    path: str
    modifier: Optional[str] = None  # public/weak
    path_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.IMPORT

    def __repr__(self) -> str:
        modifier = f"{self.modifier} " if self.modifier else ""
        return f'Import({modifier}"{self.path}")'


@dataclass
class OptionStatement:
    """A file, message, field or rpc option. Also used for [bracketed] options."""

    name: str
    value: OptionValue
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.OPTION

    def __repr__(self) -> str:
        return f"Option({self.name} = {self.value!r})"


@dataclass
class ReservedRange:
    """An inclusive number range; ``end_is_max`` marks a ``to max`` bound."""

    start: int
    end: int
    end_is_max: bool = False

    def contains(self, number: int) -> bool:
        return self.start <= number <= self.end


@dataclass
class ReservedStatement:
    ranges: List[ReservedRange] = field(default_factory=list)
    names: List[str] = field(default_factory=list)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.RESERVED


@dataclass
class ExtensionsStatement:
    ranges: List[ReservedRange] = field(default_factory=list)
    options: List[OptionStatement] = field(default_factory=list)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.EXTENSIONS


@dataclass
class FieldDefinition:
    """A field. ``type_name`` keeps a leading dot for absolute references."""

    name: str
    type_name: str
    number: int
    modifier: Optional[str] = None  # optional/required/repeated
    options: List[OptionStatement] = field(default_factory=list)
    type_name_range: Range = field(default_factory=Range.empty)
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.FIELD

    def __repr__(self) -> str:
        modifier = f"{self.modifier} " if self.modifier else ""
        return f"Field({modifier}{self.type_name} {self.name} = {self.number})"


@dataclass
class MapFieldDefinition:
    name: str
    key_type: str
    value_type: str
    number: int
    options: List[OptionStatement] = field(default_factory=list)
    key_type_range: Range = field(default_factory=Range.empty)
    value_type_range: Range = field(default_factory=Range.empty)
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.MAP_FIELD

    def __repr__(self) -> str:
        return f"MapField(map<{self.key_type}, {self.value_type}> {self.name} = {self.number})"


@dataclass
class GroupFieldDefinition:
    """A proto2 group: a field and a nested message declared together."""

    name: str
    number: int
    modifier: Optional[str] = None
    options: List[OptionStatement] = field(default_factory=list)
    fields: List[FieldDefinition] = field(default_factory=list)
    maps: List[MapFieldDefinition] = field(default_factory=list)
    groups: List["GroupFieldDefinition"] = field(default_factory=list)
    oneofs: List["OneofDefinition"] = field(default_factory=list)
    nested_messages: List["MessageDefinition"] = field(default_factory=list)
    nested_enums: List["EnumDefinition"] = field(default_factory=list)
    extends: List["ExtendDefinition"] = field(default_factory=list)
    reserved: List[ReservedStatement] = field(default_factory=list)
    extensions: List[ExtensionsStatement] = field(default_factory=list)
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.GROUP_FIELD

    @property
    def field_name(self) -> str:
        return self.name.lower()


@dataclass
class OneofDefinition:
    name: str
    fields: List[FieldDefinition] = field(default_factory=list)
    groups: List[GroupFieldDefinition] = field(default_factory=list)
    options: List[OptionStatement] = field(default_factory=list)
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.ONEOF


@dataclass
class EnumValueDefinition:
    name: str
    number: int
    options: List[OptionStatement] = field(default_factory=list)
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.ENUM_VALUE

    def __repr__(self) -> str:
        return f"EnumValue({self.name} = {self.number})"


@dataclass
class EnumDefinition:
    name: str
    values: List[EnumValueDefinition] = field(default_factory=list)
    options: List[OptionStatement] = field(default_factory=list)
    reserved: List[ReservedStatement] = field(default_factory=list)
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.ENUM

    def get_option(self, name: str) -> Optional[OptionValue]:
        for option in self.options:
            if option.name == name:
                return option.value
        return None

    def __repr__(self) -> str:
        return f"Enum({self.name}, values={self.values})"


@dataclass
class MessageDefinition:
    name: str
    fields: List[FieldDefinition] = field(default_factory=list)
    maps: List[MapFieldDefinition] = field(default_factory=list)
    groups: List[GroupFieldDefinition] = field(default_factory=list)
    oneofs: List[OneofDefinition] = field(default_factory=list)
    nested_messages: List["MessageDefinition"] = field(default_factory=list)
    nested_enums: List[EnumDefinition] = field(default_factory=list)
    extends: List["ExtendDefinition"] = field(default_factory=list)
    options: List[OptionStatement] = field(default_factory=list)
    reserved: List[ReservedStatement] = field(default_factory=list)
    extensions: List[ExtensionsStatement] = field(default_factory=list)
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.MESSAGE

    def __repr__(self) -> str:
        nested_str = ""
        if self.nested_messages or self.nested_enums:
            nested_str = f", nested={len(self.nested_messages)}msg+{len(self.nested_enums)}enum"
        return f"Message({self.name}, fields={self.fields}{nested_str})"


@dataclass
class RpcDefinition:
    name: str
    request_type: str
    response_type: str
    request_streaming: bool = False
    response_streaming: bool = False
    options: List[OptionStatement] = field(default_factory=list)
    request_type_range: Range = field(default_factory=Range.empty)
    response_type_range: Range = field(default_factory=Range.empty)
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.RPC

    def __repr__(self) -> str:
        req = f"stream {self.request_type}" if self.request_streaming else self.request_type
        resp = f"stream {self.response_type}" if self.response_streaming else self.response_type
        return f"Rpc({self.name}({req}) returns ({resp}))"


@dataclass
class ServiceDefinition:
    name: str
    rpcs: List[RpcDefinition] = field(default_factory=list)
    options: List[OptionStatement] = field(default_factory=list)
    name_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.SERVICE


@dataclass
class ExtendDefinition:
    extend_type: str
    fields: List[FieldDefinition] = field(default_factory=list)
    groups: List[GroupFieldDefinition] = field(default_factory=list)
    extend_type_range: Range = field(default_factory=Range.empty)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.EXTEND


@dataclass
class ProtoFile:
    """The root node of a parsed proto file."""

    uri: str = ""
    syntax: Optional[SyntaxStatement] = None
    edition: Optional[EditionStatement] = None
    package: Optional[PackageStatement] = None
    imports: List[ImportStatement] = field(default_factory=list)
    options: List[OptionStatement] = field(default_factory=list)
    messages: List[MessageDefinition] = field(default_factory=list)
    enums: List[EnumDefinition] = field(default_factory=list)
    services: List[ServiceDefinition] = field(default_factory=list)
    extends: List[ExtendDefinition] = field(default_factory=list)
    syntax_errors: List[SyntaxIssue] = field(default_factory=list)
    range: Range = field(default_factory=Range.empty)
    comments: Optional[str] = None
    trailing_comment: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.FILE

    @property
    def package_name(self) -> str:
        return self.package.name if self.package else ""

    @property
    def syntax_version(self) -> Optional[str]:
        return self.syntax.version if self.syntax else None

    def __repr__(self) -> str:
        return (
            f"ProtoFile(package={self.package_name or None}, imports={len(self.imports)}, "
            f"messages={len(self.messages)}, enums={len(self.enums)}, "
            f"services={len(self.services)}, errors={len(self.syntax_errors)})"
        )


# A message or group body; both share the same member lists.
MessageBody = TypingUnion[MessageDefinition, GroupFieldDefinition]


SCALAR_TYPES = frozenset(
    {
        "double",
        "float",
        "int32",
        "int64",
        "uint32",
        "uint64",
        "sint32",
        "sint64",
        "fixed32",
        "fixed64",
        "sfixed32",
        "sfixed64",
        "bool",
        "string",
        "bytes",
    }
)

MAP_KEY_TYPES = SCALAR_TYPES - {"double", "float", "bytes"}

MIN_FIELD_NUMBER = 1
MAX_FIELD_NUMBER = 536870911
RESERVED_RANGE_START = 19000
RESERVED_RANGE_END = 19999
MAX_ENUM_NUMBER = 2147483647
