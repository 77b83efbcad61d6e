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

"""Symbol table entries."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from protosense.frontend.ast import Location, ProtoFile


class SymbolKind(Enum):
    """Kinds of named declarations tracked by the analyzer."""

    MESSAGE = "message"
    ENUM = "enum"
    ENUM_VALUE = "enum_value"
    FIELD = "field"
    ONEOF = "oneof"
    SERVICE = "service"
    RPC = "rpc"

    @property
    def is_type(self) -> bool:
        return self in (SymbolKind.MESSAGE, SymbolKind.ENUM)


@dataclass
class Symbol:
    """A named declaration; ``location`` points at its name."""

    name: str
    full_name: str
    kind: SymbolKind
    location: Location
    container_name: Optional[str] = None
    documentation: Optional[str] = None

    @property
    def uri(self) -> str:
        return self.location.uri

    def __repr__(self) -> str:
        return f"Symbol({self.kind.value} {self.full_name})"


@dataclass
class ImportResolution:
    import_path: str
    resolved_uri: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_uri is not None


@dataclass
class FileRecord:
    """Everything the analyzer knows about one loaded file."""

    uri: str
    tree: ProtoFile
    symbols: List[Symbol] = field(default_factory=list)
    imports: List[str] = field(default_factory=list)
    logical_path: Optional[str] = None

    @property
    def package(self) -> str:
        return self.tree.package_name
