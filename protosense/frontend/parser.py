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

"""Recursive descent parser for proto2, proto3 and editions files.

Grammar rules raise :class:`ParseError`. Only the statement loops catch it:
the error is recorded on ``ProtoFile.syntax_errors`` and parsing resumes at
the next statement, so :func:`parse` always returns a tree.
"""

from typing import Callable, List, Optional, Tuple

from protosense.frontend.ast import (
    MAX_ENUM_NUMBER,
    MAX_FIELD_NUMBER,
    EditionStatement,
    EnumDefinition,
    EnumValueDefinition,
    ExtendDefinition,
    ExtensionsStatement,
    FieldDefinition,
    GroupFieldDefinition,
    ImportStatement,
    MapFieldDefinition,
    MessageBody,
    MessageDefinition,
    OneofDefinition,
    OptionStatement,
    OptionValue,
    PackageStatement,
    Position,
    ProtoFile,
    Range,
    ReservedRange,
    ReservedStatement,
    RpcDefinition,
    ServiceDefinition,
    SyntaxIssue,
    SyntaxStatement,
)
from protosense.frontend.lexer import (
    Token,
    TokenType,
    parse_float_literal,
    parse_int_literal,
    tokenize,
    unquote,
)

FIELD_MODIFIERS = ("optional", "required", "repeated")

# Blocks nested deeper than this are skipped rather than parsed.
MAX_NESTING_DEPTH = 100


class ParseError(Exception):
    """Error during proto parsing."""

    def __init__(self, message: str, range: Range):
        super().__init__(
            f"Line {range.start.line + 1}, Column {range.start.character + 1}: {message}"
        )
        self.message = message
        self.range = range


class Parser:
    """Recursive descent parser producing a :class:`ProtoFile`."""

    def __init__(self, tokens: List[Token], uri: str = "<input>", source: str = ""):
        self.tokens = tokens
        self.pos = 0
        self.uri = uri
        self.source = source
        self.file = ProtoFile(uri=uri, range=self._whole_range(source))
        self.depth = 0
        # Most recent leading comment no node has claimed yet.
        self._dangling: Optional[str] = None

    @staticmethod
    def _whole_range(source: str) -> Range:
        lines = source.split("\n")
        return Range(Position(0, 0), Position(len(lines) - 1, len(lines[-1])))

    def at_end(self) -> bool:
        return self.current().type == TokenType.EOF

    def current(self) -> Token:
        if self.pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[self.pos]

    def peek(self, offset: int = 1) -> Token:
        pos = self.pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[pos]

    def previous(self) -> Token:
        return self.tokens[max(self.pos - 1, 0)]

    def check(self, token_type: TokenType) -> bool:
        return self.current().type == token_type

    def check_keyword(self, value: str) -> bool:
        token = self.current()
        return token.type == TokenType.IDENT and token.value == value

    def match(self, *types: TokenType) -> bool:
        for token_type in types:
            if self.check(token_type):
                self.advance()
                return True
        return False

    def advance(self) -> Token:
        token = self.current()
        if not self.at_end():
            self.pos += 1
        if token.leading_comment:
            self._dangling = token.leading_comment
        return token

    def consume(self, token_type: TokenType, message: str) -> Token:
        if self.check(token_type):
            return self.advance()
        raise self.error(message)

    def consume_keyword(self, value: str, message: Optional[str] = None) -> Token:
        if self.check_keyword(value):
            return self.advance()
        raise self.error(message or f"Expected '{value}'")

    def error(self, message: str) -> ParseError:
        return ParseError(message, self.current().range)

    def record(self, error: ParseError) -> None:
        self.file.syntax_errors.append(SyntaxIssue(error.message, error.range))

    def _claim_comment(self, first: Token) -> Optional[str]:
        comment = first.leading_comment or self._dangling
        self._dangling = None
        return comment

    def _finish(self, node, first: Token, comment: Optional[str], brace: Optional[Token] = None):
        last = self.previous()
        node.range = Range(first.range.start, last.range.end)
        trailing = last.trailing_comment
        if brace is not None and brace.trailing_comment:
            trailing = brace.trailing_comment
        node.comments = comment or trailing
        node.trailing_comment = trailing
        return node

    # Error recovery

    def skip_to_next_statement(self) -> None:
        """Discard tokens through the next ';' or '}'."""
        while not self.at_end():
            token = self.advance()
            if token.type in (TokenType.SEMI, TokenType.RBRACE):
                return

    def skip_member(self) -> None:
        """Discard the rest of a block member, stopping before the block's '}'."""
        depth = 0
        while not self.at_end():
            if depth == 0 and self.check(TokenType.RBRACE):
                return
            token = self.advance()
            if token.type == TokenType.LBRACE:
                depth += 1
            elif token.type == TokenType.RBRACE:
                depth -= 1
                if depth == 0:
                    return
            elif token.type == TokenType.SEMI and depth == 0:
                return

    def skip_block(self) -> None:
        """Discard tokens through the '}' closing the current block."""
        depth = 1
        while not self.at_end():
            token = self.advance()
            if token.type == TokenType.LBRACE:
                depth += 1
            elif token.type == TokenType.RBRACE:
                depth -= 1
                if depth == 0:
                    return

    def parse_block_members(self, node, parse_member: Callable, label: str) -> None:
        """Parse members until the closing brace, recovering per member.

        Past ``MAX_NESTING_DEPTH`` open blocks the body is skipped whole and
        one error is recorded.
        """
        if self.depth >= MAX_NESTING_DEPTH:
            self.record(self.error(f"{label} is nested too deeply"))
            self.skip_block()
            return
        self.depth += 1
        try:
            while True:
                if self.match(TokenType.RBRACE):
                    return
                if self.at_end():
                    self.record(self.error(f"Expected '}}' to close {label}"))
                    return
                try:
                    parse_member(node)
                except ParseError as e:
                    self.record(e)
                    self.skip_member()
        finally:
            self.depth -= 1

    # Top level

    def parse(self) -> ProtoFile:
        while not self.at_end():
            try:
                self.parse_top_level()
            except ParseError as e:
                self.record(e)
                self.skip_to_next_statement()
        return self.file

    def parse_top_level(self) -> None:
        file = self.file
        token = self.current()
        if token.type == TokenType.SEMI:
            self.advance()
            return
        if token.type != TokenType.IDENT:
            raise self.error(f"Unexpected token '{token.value}'")

        keyword = token.value
        if keyword == "syntax":
            if file.syntax is not None:
                raise self.error("Duplicate syntax declaration")
            file.syntax = self.parse_syntax()
        elif keyword == "edition":
            if file.edition is not None:
                raise self.error("Duplicate edition declaration")
            file.edition = self.parse_edition()
        elif keyword == "package":
            if file.package is not None:
                raise self.error("Duplicate package declaration")
            file.package = self.parse_package()
        elif keyword == "import":
            file.imports.append(self.parse_import())
        elif keyword == "option":
            file.options.append(self.parse_option_statement())
        elif keyword == "message":
            file.messages.append(self.parse_message())
        elif keyword == "enum":
            file.enums.append(self.parse_enum())
        elif keyword == "service":
            file.services.append(self.parse_service())
        elif keyword == "extend":
            file.extends.append(self.parse_extend())
        else:
            raise self.error(f"Unexpected token '{keyword}'")

    def parse_syntax(self) -> SyntaxStatement:
        first = self.consume_keyword("syntax")
        comment = self._claim_comment(first)
        self.consume(TokenType.EQUALS, "Expected '=' after syntax")
        value = self.consume(TokenType.STRING, "Expected syntax string").value
        self.consume(TokenType.SEMI, "Expected ';' after syntax declaration")
        return self._finish(SyntaxStatement(version=unquote(value)), first, comment)

    def parse_edition(self) -> EditionStatement:
        first = self.consume_keyword("edition")
        comment = self._claim_comment(first)
        self.consume(TokenType.EQUALS, "Expected '=' after edition")
        value = self.consume(TokenType.STRING, "Expected edition string").value
        self.consume(TokenType.SEMI, "Expected ';' after edition declaration")
        return self._finish(EditionStatement(edition=unquote(value)), first, comment)

    def parse_package(self) -> PackageStatement:
        first = self.consume_keyword("package")
        comment = self._claim_comment(first)
        name, name_range = self.parse_full_ident("Expected package name")
        self.consume(TokenType.SEMI, "Expected ';' after package declaration")
        node = PackageStatement(name=name, name_range=name_range)
        return self._finish(node, first, comment)

    def parse_import(self) -> ImportStatement:
        first = self.consume_keyword("import")
        comment = self._claim_comment(first)
        modifier = None
        if self.check_keyword("public") or self.check_keyword("weak"):
            modifier = self.advance().value
        path = self.consume(TokenType.STRING, "Expected import path")
        self.consume(TokenType.SEMI, "Expected ';' after import")
        node = ImportStatement(path=unquote(path.value), modifier=modifier, path_range=path.range)
        return self._finish(node, first, comment)

    # Options

    def parse_option_statement(self) -> OptionStatement:
        first = self.consume_keyword("option")
        comment = self._claim_comment(first)
        name, name_range = self.parse_option_name()
        self.consume(TokenType.EQUALS, "Expected '=' after option name")
        value = self.parse_option_value()
        self.consume(TokenType.SEMI, "Expected ';' after option")
        node = OptionStatement(name=name, value=value, name_range=name_range)
        return self._finish(node, first, comment)

    def parse_field_options(self) -> List[OptionStatement]:
        self.consume(TokenType.LBRACKET, "Expected '[' for field options")
        options = []
        while True:
            start = self.current()
            name, name_range = self.parse_option_name()
            self.consume(TokenType.EQUALS, "Expected '=' after option name")
            value = self.parse_option_value()
            options.append(
                OptionStatement(
                    name=name,
                    value=value,
                    name_range=name_range,
                    range=Range(start.range.start, self.previous().range.end),
                )
            )
            if self.match(TokenType.COMMA):
                continue
            if self.check(TokenType.RBRACKET):
                break
            raise self.error("Expected ',' or ']' in field options")
        self.consume(TokenType.RBRACKET, "Expected ']' after field options")
        return options

    def parse_option_name(self) -> Tuple[str, Range]:
        start = self.current()
        parts = [self._parse_option_name_part()]
        while self.match(TokenType.DOT):
            parts.append(self._parse_option_name_part())
        return ".".join(parts), Range(start.range.start, self.previous().range.end)

    def _parse_option_name_part(self) -> str:
        if self.match(TokenType.LPAREN):
            ext, _ = self.parse_full_ident("Expected extension name")
            self.consume(TokenType.RPAREN, "Expected ')' after extension name")
            return f"({ext})"
        return self.consume(TokenType.IDENT, "Expected option name").value

    def parse_option_value(self) -> OptionValue:
        token = self.current()
        if token.type == TokenType.STRING:
            parts = []
            while self.check(TokenType.STRING):
                parts.append(unquote(self.advance().value))
            return "".join(parts)
        if token.type == TokenType.LBRACE:
            return self.parse_aggregate_value()
        if token.type in (TokenType.MINUS, TokenType.PLUS):
            sign = self.advance().value
            if self.check(TokenType.NUMBER):
                return self._number_value(sign + self.advance().value)
            if self.check(TokenType.IDENT) and self.current().value.lower() in ("inf", "nan"):
                return float(sign + self.advance().value.lower())
            raise self.error("Expected number after sign")
        if token.type == TokenType.NUMBER:
            return self._number_value(self.advance().value)
        if token.type == TokenType.IDENT:
            if token.value == "true":
                self.advance()
                return True
            if token.value == "false":
                self.advance()
                return False
            if token.value in ("inf", "nan"):
                self.advance()
                return float(token.value)
        if token.type in (TokenType.IDENT, TokenType.DOT):
            name, _ = self.parse_full_ident("Expected option value")
            return name
        raise self.error("Expected option value")

    def _number_value(self, text: str) -> OptionValue:
        body = text.lstrip("+-")
        is_hex = body[:2] in ("0x", "0X")
        if not is_hex and any(ch in body for ch in ".eE"):
            value = parse_float_literal(text)
        else:
            value = parse_int_literal(text)
        if value is None:
            raise ParseError(f"Invalid number '{text}'", self.previous().range)
        return value

    def parse_aggregate_value(self) -> str:
        """Replay a brace-delimited text-format value as a single string."""
        open_brace = self.consume(TokenType.LBRACE, "Expected '{'")
        parts = ["{"]
        strings: List[str] = []
        depth = 1
        while depth > 0:
            if self.at_end():
                raise ParseError("Unterminated aggregate value", open_brace.range)
            token = self.advance()
            if token.type == TokenType.STRING:
                strings.append(unquote(token.value))
                continue
            if strings:
                parts.append(_quote("".join(strings)))
                strings = []
            if token.type == TokenType.LBRACE:
                depth += 1
            elif token.type == TokenType.RBRACE:
                depth -= 1
            parts.append(token.value)
        return " ".join(parts)

    # Messages

    def parse_message(self) -> MessageDefinition:
        first = self.consume_keyword("message")
        comment = self._claim_comment(first)
        name = self.consume(TokenType.IDENT, "Expected message name")
        brace = self.consume(TokenType.LBRACE, "Expected '{' after message name")
        message = MessageDefinition(name=name.value, name_range=name.range)
        self.parse_block_members(message, self.parse_message_member, f"message '{name.value}'")
        return self._finish(message, first, comment, brace)

    def _starts_block(self, keyword: str) -> bool:
        return (
            self.check_keyword(keyword)
            and self.peek(1).type in (TokenType.IDENT, TokenType.DOT)
            and self.peek(2).type != TokenType.EQUALS
        )

    def _starts_group(self, offset: int = 0) -> bool:
        token = self.peek(offset)
        return (
            token.type == TokenType.IDENT
            and token.value == "group"
            and self.peek(offset + 1).type == TokenType.IDENT
            and self.peek(offset + 2).type == TokenType.EQUALS
        )

    def parse_message_member(self, body: MessageBody) -> None:
        token = self.current()
        if token.type == TokenType.SEMI:
            self.advance()
            return
        if token.type not in (TokenType.IDENT, TokenType.DOT):
            raise self.error(f"Unexpected token '{token.value}' in message body")

        if self.check_keyword("option"):
            body.options.append(self.parse_option_statement())
        elif self.check_keyword("reserved"):
            body.reserved.append(self.parse_reserved(MAX_FIELD_NUMBER))
        elif self.check_keyword("extensions"):
            body.extensions.append(self.parse_extensions())
        elif self._starts_block("message"):
            body.nested_messages.append(self.parse_message())
        elif self._starts_block("enum"):
            body.nested_enums.append(self.parse_enum())
        elif self._starts_block("oneof"):
            body.oneofs.append(self.parse_oneof())
        elif self._starts_block("extend"):
            body.extends.append(self.parse_extend())
        elif self.check_keyword("map") and self.peek(1).type == TokenType.LANGLE:
            body.maps.append(self.parse_map_field())
        elif self._starts_group(0) or (token.value in FIELD_MODIFIERS and self._starts_group(1)):
            body.groups.append(self.parse_group())
        else:
            body.fields.append(self.parse_field())

    def parse_field(self) -> FieldDefinition:
        first = self.current()
        modifier = None
        if first.value in FIELD_MODIFIERS and self.peek(2).type != TokenType.EQUALS:
            modifier = self.advance().value
        type_name, type_range = self.parse_full_ident("Expected field type")
        comment = self._claim_comment(first)
        name = self.consume(TokenType.IDENT, "Expected field name")
        self.consume(TokenType.EQUALS, "Expected '=' after field name")
        number = self.parse_integer("Expected field number")
        options = self.parse_field_options() if self.check(TokenType.LBRACKET) else []
        self.consume(TokenType.SEMI, "Expected ';' after field declaration")

        node = FieldDefinition(
            name=name.value,
            type_name=type_name,
            number=number,
            modifier=modifier,
            options=options,
            type_name_range=type_range,
            name_range=name.range,
        )
        return self._finish(node, first, comment)

    def parse_map_field(self) -> MapFieldDefinition:
        first = self.consume_keyword("map")
        comment = self._claim_comment(first)
        self.consume(TokenType.LANGLE, "Expected '<' after map")
        key = self.consume(TokenType.IDENT, "Expected map key type")
        self.consume(TokenType.COMMA, "Expected ',' in map type")
        value_type, value_range = self.parse_full_ident("Expected map value type")
        self.consume(TokenType.RANGLE, "Expected '>' after map type")
        name = self.consume(TokenType.IDENT, "Expected field name")
        self.consume(TokenType.EQUALS, "Expected '=' after field name")
        number = self.parse_integer("Expected field number")
        options = self.parse_field_options() if self.check(TokenType.LBRACKET) else []
        self.consume(TokenType.SEMI, "Expected ';' after map field")

        node = MapFieldDefinition(
            name=name.value,
            key_type=key.value,
            value_type=value_type,
            number=number,
            options=options,
            key_type_range=key.range,
            value_type_range=value_range,
            name_range=name.range,
        )
        return self._finish(node, first, comment)

    def parse_group(self) -> GroupFieldDefinition:
        first = self.current()
        modifier = None
        if first.value in FIELD_MODIFIERS:
            modifier = self.advance().value
        self.consume_keyword("group")
        comment = self._claim_comment(first)
        name = self.consume(TokenType.IDENT, "Expected group name")
        self.consume(TokenType.EQUALS, "Expected '=' after group name")
        number = self.parse_integer("Expected group field number")
        options = self.parse_field_options() if self.check(TokenType.LBRACKET) else []
        brace = self.consume(TokenType.LBRACE, "Expected '{' after group declaration")

        group = GroupFieldDefinition(
            name=name.value,
            number=number,
            modifier=modifier,
            options=options,
            name_range=name.range,
        )
        self.parse_block_members(group, self.parse_message_member, f"group '{name.value}'")
        return self._finish(group, first, comment, brace)

    def parse_oneof(self) -> OneofDefinition:
        first = self.consume_keyword("oneof")
        comment = self._claim_comment(first)
        name = self.consume(TokenType.IDENT, "Expected oneof name")
        brace = self.consume(TokenType.LBRACE, "Expected '{' after oneof name")
        oneof = OneofDefinition(name=name.value, name_range=name.range)
        self.parse_block_members(oneof, self.parse_oneof_member, f"oneof '{name.value}'")
        return self._finish(oneof, first, comment, brace)

    def parse_oneof_member(self, oneof: OneofDefinition) -> None:
        if self.match(TokenType.SEMI):
            return
        if self.check_keyword("option"):
            oneof.options.append(self.parse_option_statement())
        elif self._starts_group(0):
            oneof.groups.append(self.parse_group())
        else:
            oneof.fields.append(self.parse_field())

    def parse_reserved(self, max_value: int) -> ReservedStatement:
        first = self.consume_keyword("reserved")
        comment = self._claim_comment(first)
        node = ReservedStatement()
        while True:
            if self.check(TokenType.STRING):
                node.names.append(unquote(self.advance().value))
            elif self.check(TokenType.IDENT):
                # Editions spell reserved names as bare identifiers.
                node.names.append(self.advance().value)
            elif self.check(TokenType.NUMBER) or self.check(TokenType.MINUS):
                node.ranges.append(self.parse_range(max_value))
            else:
                raise self.error("Expected reserved range or name")
            if not self.match(TokenType.COMMA):
                break
        self.consume(TokenType.SEMI, "Expected ';' after reserved")
        return self._finish(node, first, comment)

    def parse_extensions(self) -> ExtensionsStatement:
        first = self.consume_keyword("extensions")
        comment = self._claim_comment(first)
        node = ExtensionsStatement()
        while True:
            node.ranges.append(self.parse_range(MAX_FIELD_NUMBER))
            if not self.match(TokenType.COMMA):
                break
        if self.check(TokenType.LBRACKET):
            node.options = self.parse_field_options()
        self.consume(TokenType.SEMI, "Expected ';' after extensions")
        return self._finish(node, first, comment)

    def parse_range(self, max_value: int) -> ReservedRange:
        start = self.parse_integer("Expected range start")
        if not self.check_keyword("to"):
            return ReservedRange(start, start)
        self.advance()
        if self.check_keyword("max"):
            self.advance()
            return ReservedRange(start, max_value, end_is_max=True)
        return ReservedRange(start, self.parse_integer("Expected range end"))

    def parse_integer(self, message: str) -> int:
        negative = False
        if self.check(TokenType.MINUS):
            self.advance()
            negative = True
        token = self.consume(TokenType.NUMBER, message)
        value = parse_int_literal(token.value)
        if value is None:
            raise ParseError(f"Invalid integer '{token.value}'", token.range)
        return -value if negative else value

    # Enums

    def parse_enum(self) -> EnumDefinition:
        first = self.consume_keyword("enum")
        comment = self._claim_comment(first)
        name = self.consume(TokenType.IDENT, "Expected enum name")
        brace = self.consume(TokenType.LBRACE, "Expected '{' after enum name")
        enum = EnumDefinition(name=name.value, name_range=name.range)
        self.parse_block_members(enum, self.parse_enum_member, f"enum '{name.value}'")
        return self._finish(enum, first, comment, brace)

    def parse_enum_member(self, enum: EnumDefinition) -> None:
        if self.match(TokenType.SEMI):
            return
        if self.check_keyword("option") and self.peek(1).type != TokenType.EQUALS:
            enum.options.append(self.parse_option_statement())
        elif self.check_keyword("reserved") and self.peek(1).type != TokenType.EQUALS:
            enum.reserved.append(self.parse_reserved(MAX_ENUM_NUMBER))
        else:
            enum.values.append(self.parse_enum_value())

    def parse_enum_value(self) -> EnumValueDefinition:
        name = self.consume(TokenType.IDENT, "Expected enum value name")
        comment = self._claim_comment(name)
        self.consume(TokenType.EQUALS, "Expected '=' after enum value name")
        number = self.parse_integer("Expected enum value number")
        options = self.parse_field_options() if self.check(TokenType.LBRACKET) else []
        self.consume(TokenType.SEMI, "Expected ';' after enum value")
        node = EnumValueDefinition(
            name=name.value, number=number, options=options, name_range=name.range
        )
        return self._finish(node, name, comment)

    # Services

    def parse_service(self) -> ServiceDefinition:
        first = self.consume_keyword("service")
        comment = self._claim_comment(first)
        name = self.consume(TokenType.IDENT, "Expected service name")
        brace = self.consume(TokenType.LBRACE, "Expected '{' after service name")
        service = ServiceDefinition(name=name.value, name_range=name.range)
        self.parse_block_members(service, self.parse_service_member, f"service '{name.value}'")
        return self._finish(service, first, comment, brace)

    def parse_service_member(self, service: ServiceDefinition) -> None:
        if self.match(TokenType.SEMI):
            return
        if self.check_keyword("option"):
            service.options.append(self.parse_option_statement())
        elif self.check_keyword("rpc"):
            service.rpcs.append(self.parse_rpc())
        else:
            raise self.error(f"Unexpected token '{self.current().value}' in service body")

    def parse_rpc(self) -> RpcDefinition:
        first = self.consume_keyword("rpc")
        comment = self._claim_comment(first)
        name = self.consume(TokenType.IDENT, "Expected rpc name")

        self.consume(TokenType.LPAREN, "Expected '(' after rpc name")
        request_streaming = self._match_stream()
        request, request_range = self.parse_full_ident("Expected request type")
        self.consume(TokenType.RPAREN, "Expected ')' after request type")
        self.consume_keyword("returns", "Expected 'returns' after request type")
        self.consume(TokenType.LPAREN, "Expected '(' after 'returns'")
        response_streaming = self._match_stream()
        response, response_range = self.parse_full_ident("Expected response type")
        self.consume(TokenType.RPAREN, "Expected ')' after response type")

        rpc = RpcDefinition(
            name=name.value,
            request_type=request,
            response_type=response,
            request_streaming=request_streaming,
            response_streaming=response_streaming,
            request_type_range=request_range,
            response_type_range=response_range,
            name_range=name.range,
        )
        brace = None
        if self.check(TokenType.LBRACE):
            brace = self.advance()
            self.parse_block_members(rpc, self.parse_rpc_member, f"rpc '{name.value}'")
        else:
            self.consume(TokenType.SEMI, "Expected ';' or '{' after rpc definition")
        return self._finish(rpc, first, comment, brace)

    def _match_stream(self) -> bool:
        if self.check_keyword("stream") and self.peek(1).type in (TokenType.IDENT, TokenType.DOT):
            self.advance()
            return True
        return False

    def parse_rpc_member(self, rpc: RpcDefinition) -> None:
        if self.match(TokenType.SEMI):
            return
        if self.check_keyword("option"):
            rpc.options.append(self.parse_option_statement())
        else:
            raise self.error(f"Unexpected token '{self.current().value}' in rpc body")

    # Extensions

    def parse_extend(self) -> ExtendDefinition:
        first = self.consume_keyword("extend")
        comment = self._claim_comment(first)
        extend_type, extend_range = self.parse_full_ident("Expected extended type name")
        brace = self.consume(TokenType.LBRACE, "Expected '{' after extended type")
        extend = ExtendDefinition(extend_type=extend_type, extend_type_range=extend_range)
        self.parse_block_members(extend, self.parse_extend_member, f"extend '{extend_type}'")
        return self._finish(extend, first, comment, brace)

    def parse_extend_member(self, extend: ExtendDefinition) -> None:
        if self.match(TokenType.SEMI):
            return
        token = self.current()
        if self._starts_group(0) or (token.value in FIELD_MODIFIERS and self._starts_group(1)):
            extend.groups.append(self.parse_group())
        else:
            extend.fields.append(self.parse_field())

    def parse_full_ident(self, message: str = "Expected identifier") -> Tuple[str, Range]:
        start = self.current()
        prefix = "." if self.match(TokenType.DOT) else ""
        parts = [self.consume(TokenType.IDENT, message).value]
        while self.match(TokenType.DOT):
            parts.append(self.consume(TokenType.IDENT, message).value)
        return prefix + ".".join(parts), Range(start.range.start, self.previous().range.end)


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def parse(text: str, uri: str = "<input>") -> ProtoFile:
    """Parse proto source text. Syntax errors are recorded, never raised."""
    return Parser(tokenize(text), uri, text).parse()
