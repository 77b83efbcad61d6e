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

"""Proto frontend."""

from pathlib import Path
from typing import List, Optional

from protosense.frontend.ast import ProtoFile
from protosense.frontend.lexer import Lexer, Token, TokenType, tokenize
from protosense.frontend.parser import Parser, ParseError, parse


class ProtoFrontend:
    """Parses .proto sources into syntax trees."""

    extensions: List[str] = [".proto"]

    def parse(self, source: str, uri: str = "<input>") -> ProtoFile:
        return Parser(Lexer(source).tokenize(), uri, source).parse()

    def parse_file(self, path: Path, uri: Optional[str] = None) -> ProtoFile:
        """Parse a file; the tree is keyed by its file URI unless one is given."""
        source = path.read_text(encoding="utf-8")
        return self.parse(source, uri or path.resolve().as_uri())

    def supports_file(self, path: Path) -> bool:
        """Return True if this frontend handles the file extension."""
        return path.suffix.lower() in self.extensions


__all__ = [
    "ProtoFrontend",
    "Lexer",
    "Parser",
    "ParseError",
    "Token",
    "TokenType",
    "parse",
    "tokenize",
]
