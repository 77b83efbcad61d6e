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

"""Tests for the proto parser."""

import random
import tempfile
from pathlib import Path

from protosense.analysis import SemanticAnalyzer
from protosense.frontend import ProtoFrontend
from protosense.frontend.ast import MAX_FIELD_NUMBER, NodeKind, Position, ProtoFile
from protosense.frontend.parser import MAX_NESTING_DEPTH, parse


def test_parse_basic_file():
    source = """
syntax = "proto3";
package test.v1;
import public "other.proto";

message User {
  string name = 1;
  repeated int32 ids = 2 [packed = true, deprecated = false];
  map<string, Address> addresses = 3;
  oneof contact {
    string email = 4;
    string phone = 5;
  }
  message Address {
    string city = 1;
  }
  enum Kind {
    KIND_UNSPECIFIED = 0;
    KIND_ADMIN = 1;
  }
}
"""
    tree = parse(source)
    assert tree.syntax_errors == []
    assert tree.syntax_version == "proto3"
    assert tree.package_name == "test.v1"
    assert tree.imports[0].path == "other.proto"
    assert tree.imports[0].modifier == "public"

    user = tree.messages[0]
    assert user.kind == NodeKind.MESSAGE
    assert [f.name for f in user.fields] == ["name", "ids"]
    assert user.fields[1].modifier == "repeated"
    assert [(o.name, o.value) for o in user.fields[1].options] == [
        ("packed", True),
        ("deprecated", False),
    ]
    assert user.maps[0].key_type == "string"
    assert user.maps[0].value_type == "Address"
    assert [f.name for f in user.oneofs[0].fields] == ["email", "phone"]
    assert user.nested_messages[0].name == "Address"
    assert user.nested_messages[0].fields[0].name == "city"
    assert user.nested_enums[0].name == "Kind"
    assert [v.name for v in user.nested_enums[0].values] == [
        "KIND_UNSPECIFIED",
        "KIND_ADMIN",
    ]


def test_parse_edition_file():
    tree = parse('edition = "2023";\nmessage A {\n  reserved foo, bar;\n}\n')
    assert tree.syntax_errors == []
    assert tree.syntax is None
    assert tree.edition.edition == "2023"
    assert tree.messages[0].reserved[0].names == ["foo", "bar"]


class TestErrorRecovery:
    """Tests for parsing malformed input."""

    def test_missing_closing_brace(self):
        """Test that a truncated message keeps its parsed fields."""
        tree = parse("message Test {\n  string name = 1;\n")
        assert len(tree.syntax_errors) == 1
        assert "close message 'Test'" in tree.syntax_errors[0].message
        assert len(tree.messages) == 1
        assert [f.name for f in tree.messages[0].fields] == ["name"]

    def test_bad_member_does_not_lose_siblings(self):
        """Test that one malformed field leaves the following ones intact."""
        tree = parse("message A {\n  string = 1;\n  int32 ok = 2;\n}\n")
        assert len(tree.syntax_errors) == 1
        assert tree.syntax_errors[0].message == "Expected field name"
        assert tree.syntax_errors[0].range.start == Position(1, 9)
        assert [f.name for f in tree.messages[0].fields] == ["ok"]

    def test_unexpected_top_level_token(self):
        """Test recovery at the next top-level statement."""
        tree = parse("foo bar;\nmessage B {}\n")
        assert len(tree.syntax_errors) == 1
        assert tree.syntax_errors[0].message == "Unexpected token 'foo'"
        assert [m.name for m in tree.messages] == ["B"]

    def test_stray_closing_brace(self):
        """Test that a stray '}' is reported and skipped."""
        tree = parse("}\nmessage A {}\n")
        assert len(tree.syntax_errors) == 1
        assert [m.name for m in tree.messages] == ["A"]

    def test_duplicate_package(self):
        """Test that a second package statement is an error."""
        tree = parse("package a;\npackage b;\n")
        assert tree.package_name == "a"
        assert [e.message for e in tree.syntax_errors] == ["Duplicate package declaration"]

    def test_empty_input(self):
        """Test that empty text parses to an empty file."""
        tree = parse("")
        assert tree.syntax_errors == []
        assert tree.messages == []
        assert tree.range.end == Position(0, 0)


# Fragments for randomly assembled, mostly invalid sources.
FRAGMENTS = [
    "syntax", "edition", "package", "import", "public", "weak", "option",
    "message", "enum", "service", "rpc", "returns", "stream", "oneof", "map",
    "group", "extend", "reserved", "extensions", "to", "max", "repeated",
    "optional", "required", "Foo", "a.b", ".c", "inf", "nan", "true",
    '"proto3"', '"x.proto"', "'\\x'", '"\\U00110000"', '"\\777"', '"open',
    "{", "}", "[", "]", "(", ")", "<", ">", ";", ",", "=", ".", ":", "-", "+",
    "0", "1", "-2", "0x", "0x1F", "1e", "1.5e-3", "99999999999999999999",
    "//", "/*", "*/", "\\", "\x00", "\t", "\u00e9", "\u00b2", "\u0663",
]


class TestMalformedInput:
    """Tests that arbitrary text always parses to a tree."""

    def test_out_of_range_unicode_escape(self):
        """Test strings holding escapes beyond U+10FFFF."""
        tree = parse('option foo = "\\UFFFFFFFF";\nmessage A {}\n')
        assert tree.syntax_errors == []
        assert tree.options[0].value == "\\UFFFFFFFF"
        assert [m.name for m in tree.messages] == ["A"]

        tree = parse('import "\\U00110000.proto";\nmessage A {}\n')
        assert tree.imports[0].path == "\\U00110000.proto"

    def test_unclosed_deep_nesting(self):
        """Test that deeply nested unclosed messages stop at the nesting limit."""
        tree = parse("message A {" * 400)
        assert isinstance(tree, ProtoFile)
        assert len(tree.messages) == 1
        assert tree.syntax_errors[0].message == "message 'A' is nested too deeply"

        depth = 1
        node = tree.messages[0]
        while node.nested_messages:
            node = node.nested_messages[0]
            depth += 1
        assert depth == MAX_NESTING_DEPTH + 1

    def test_nesting_limit_skips_whole_block(self):
        """Test that parsing resumes after a block nested too deeply."""
        source = "message A {" * 150 + "}" * 150 + "\nmessage B {}\n"
        tree = parse(source)
        assert [e.message for e in tree.syntax_errors] == ["message 'A' is nested too deeply"]
        assert [m.name for m in tree.messages] == ["A", "B"]

    def test_nesting_at_limit_is_accepted(self):
        """Test that nesting up to the limit parses without errors."""
        depth = MAX_NESTING_DEPTH
        tree = parse("message A {" * depth + "}" * depth)
        assert tree.syntax_errors == []

    def test_unbalanced_braces(self):
        """Test stray and missing braces in various positions."""
        for source in [
            "}}}{{{",
            "{{{",
            "message { { ;",
            "message A { int32 x = ; } } }",
            "enum E { A = 1; { B = 2; }",
            "service S { rpc M(A) returns (B) { { } message X {}",
            "option (x) = { a: { b: 1 };",
        ]:
            tree = parse(source)
            assert isinstance(tree, ProtoFile), source
            assert tree.syntax_errors, source

    def test_malformed_escapes(self):
        """Test truncated and invalid escape sequences in strings."""
        for source in [
            'option a = "\\',
            'option a = "\\x";',
            'option a = "\\u12";',
            'option a = "\\U0011";',
            'option a = "\\q\\\\\\";',
            "import '\\",
        ]:
            assert isinstance(parse(source), ProtoFile), source

    def test_control_and_unicode_characters(self):
        """Test sources made of control, Latin-1 and astral characters."""
        tree = parse("".join(chr(i) for i in range(300)))
        assert isinstance(tree, ProtoFile)

        rng = random.Random(7)
        for _ in range(50):
            source = "".join(chr(rng.randrange(0x110000)) for _ in range(200))
            assert isinstance(parse(source), ProtoFile)

    def test_random_fragments(self):
        """Test seeded random sequences of proto fragments."""
        rng = random.Random(20241019)
        analyzer = SemanticAnalyzer()
        for i in range(300):
            separator = rng.choice([" ", "", "\n"])
            source = separator.join(rng.choice(FRAGMENTS) for _ in range(rng.randint(1, 80)))
            uri = f"file:///fuzz/{i}.proto"
            tree = parse(source, uri)
            assert isinstance(tree, ProtoFile), source
            analyzer.update_file(uri, tree)


class TestRanges:
    """Tests for node ranges."""

    def test_whole_file_range(self):
        """Test that the file range spans all of the text."""
        tree = parse('syntax = "proto3";\nmessage A {}\n')
        assert tree.range.start == Position(0, 0)
        assert tree.range.end == Position(2, 0)

    def test_message_range_ends_at_closing_brace(self):
        """Test that a message range covers keyword through '}'."""
        tree = parse("message A {\n}")
        message = tree.messages[0]
        assert message.range.start == Position(0, 0)
        assert message.range.end == Position(1, 1)
        assert message.name_range.start == Position(0, 8)

    def test_ranges_are_ordered(self):
        """Test that every declaration starts before it ends."""
        source = (
            "message A {\n"
            "  int32 x = 1;\n"
            "  oneof o { string y = 2; }\n"
            "  map<string, A> m = 3;\n"
            "}\n"
            "enum E { E_ZERO = 0; }\n"
            "service S { rpc Call(A) returns (A); }\n"
        )
        tree = parse(source)
        message = tree.messages[0]
        nodes = [message, message.fields[0], message.oneofs[0], message.oneofs[0].fields[0], message.maps[0]]
        nodes += [tree.enums[0], tree.enums[0].values[0], tree.services[0], tree.services[0].rpcs[0]]
        for node in nodes:
            assert node.range.start <= node.range.end, node
            assert tree.range.contains(node.range.end)

    def test_field_type_range(self):
        """Test that qualified type references cover the full name."""
        tree = parse("message A {\n  .pkg.B b = 1;\n}")
        field = tree.messages[0].fields[0]
        assert field.type_name == ".pkg.B"
        assert field.type_name_range.start == Position(1, 2)
        assert field.type_name_range.end == Position(1, 8)


class TestComments:
    """Tests for attaching comments to declarations."""

    def test_leading_and_trailing_comments(self):
        """Test leading and trailing comments on messages and fields."""
        source = "// User record\nmessage User {\n  // the name\n  string name = 1; // trailing\n}\n"
        tree = parse(source)
        user = tree.messages[0]
        assert user.comments == "User record"
        field = user.fields[0]
        assert field.comments == "the name"
        assert field.trailing_comment == "trailing"

    def test_doc_comment_on_message(self):
        """Test a single-line doc comment before a message."""
        tree = parse("// doc\nmessage Foo {}")
        assert tree.messages[0].comments == "doc"

    def test_trailing_comment_used_when_no_leading(self):
        """Test that a trailing comment documents an otherwise bare field."""
        tree = parse("message A {\n  int32 x = 1; // only trailing\n}\n")
        assert tree.messages[0].fields[0].comments == "only trailing"

    def test_comment_on_opening_brace_line(self):
        """Test that a comment after '{' trails the message."""
        tree = parse("message A { // about A\n  int32 x = 1;\n}\n")
        assert tree.messages[0].comments == "about A"


class TestOptions:
    """Tests for option statements and values."""

    def test_option_value_kinds(self):
        """Test string, identifier, signed and boolean option values."""
        source = """
option java_package = "com." "example";
option optimize_for = SPEED;
option (x).y = -1.5;
option (z) = -inf;
option cc_enable_arenas = true;
option (count) = 0x10;
"""
        tree = parse(source)
        assert tree.syntax_errors == []
        values = {o.name: o.value for o in tree.options}
        assert values["java_package"] == "com.example"
        assert values["optimize_for"] == "SPEED"
        assert values["(x).y"] == -1.5
        assert values["(z)"] == float("-inf")
        assert values["cc_enable_arenas"] is True
        assert values["(count)"] == 16

    def test_aggregate_option_value(self):
        """Test that a text-format aggregate is kept as one string."""
        tree = parse('option (my.opt) = { name: "x" count: 3 };')
        assert tree.syntax_errors == []
        option = tree.options[0]
        assert option.name == "(my.opt)"
        assert option.value == '{ name : "x" count : 3 }'

    def test_nested_aggregate_option_value(self):
        """Test that nested braces inside an aggregate stay balanced."""
        tree = parse("option (x).y = { a: 1 b: { c: 2 } };")
        assert tree.syntax_errors == []
        assert tree.options[0].name == "(x).y"
        assert tree.options[0].value == "{ a : 1 b : { c : 2 } }"

    def test_unterminated_aggregate(self):
        """Test that an unterminated aggregate value is a syntax error."""
        tree = parse("option (my.opt) = { name: 1")
        assert [e.message for e in tree.syntax_errors] == ["Unterminated aggregate value"]


class TestDeclarations:
    """Tests for the less common declaration forms."""

    def test_keywords_as_names(self):
        """Test that keywords may be used as field names and types."""
        source = "message M {\n  string message = 1;\n  string option = 2;\n  message message = 3;\n}\n"
        tree = parse(source)
        assert tree.syntax_errors == []
        fields = tree.messages[0].fields
        assert [(f.type_name, f.name) for f in fields] == [
            ("string", "message"),
            ("string", "option"),
            ("message", "message"),
        ]

    def test_proto2_group(self):
        """Test a proto2 group declaration."""
        source = (
            'syntax = "proto2";\n'
            "message M {\n"
            "  optional group Result = 1 {\n"
            "    required string url = 2;\n"
            "  }\n"
            "}\n"
        )
        tree = parse(source)
        assert tree.syntax_errors == []
        group = tree.messages[0].groups[0]
        assert group.name == "Result"
        assert group.field_name == "result"
        assert group.modifier == "optional"
        assert group.number == 1
        assert group.fields[0].modifier == "required"

    def test_reserved_and_extensions(self):
        """Test reserved ranges, names and extension ranges."""
        source = (
            "message M {\n"
            "  reserved 10, 20 to 30, 100 to max;\n"
            '  reserved "old";\n'
            "  extensions 1000 to 1999;\n"
            "}\n"
        )
        tree = parse(source)
        message = tree.messages[0]
        ranges = message.reserved[0].ranges
        assert [(r.start, r.end) for r in ranges] == [
            (10, 10),
            (20, 30),
            (100, MAX_FIELD_NUMBER),
        ]
        assert ranges[2].end_is_max
        assert message.reserved[1].names == ["old"]
        assert message.extensions[0].ranges[0].contains(1500)

    def test_enum_members(self):
        """Test enum options, negative values and reserved ranges."""
        source = (
            "enum E {\n"
            "  option allow_alias = true;\n"
            "  A = 0;\n"
            "  B = 0;\n"
            "  reserved 5 to 9;\n"
            "  NEG = -1;\n"
            "}\n"
        )
        tree = parse(source)
        enum = tree.enums[0]
        assert enum.get_option("allow_alias") is True
        assert [(v.name, v.number) for v in enum.values] == [("A", 0), ("B", 0), ("NEG", -1)]
        assert enum.reserved[0].ranges[0].contains(7)

    def test_service(self):
        """Test rpcs with streaming and option bodies."""
        source = (
            "service S {\n"
            "  rpc Get(Req) returns (Resp);\n"
            "  rpc Watch(stream .pkg.Req) returns (stream Resp) {\n"
            "    option deprecated = true;\n"
            "  }\n"
            "  rpc Odd(stream) returns (Resp);\n"
            "}\n"
        )
        tree = parse(source)
        assert tree.syntax_errors == []
        get, watch, odd = tree.services[0].rpcs
        assert not get.request_streaming and not get.response_streaming
        assert watch.request_type == ".pkg.Req"
        assert watch.request_streaming and watch.response_streaming
        assert watch.options[0].name == "deprecated"
        assert odd.request_type == "stream"
        assert not odd.request_streaming

    def test_extend(self):
        """Test a top-level extend block."""
        source = "extend google.protobuf.FieldOptions {\n  optional string my_opt = 50000;\n}\n"
        tree = parse(source)
        extend = tree.extends[0]
        assert extend.extend_type == "google.protobuf.FieldOptions"
        assert extend.fields[0].number == 50000

    def test_weak_import(self):
        """Test import modifiers and the path range."""
        tree = parse('import weak "a.proto";')
        imp = tree.imports[0]
        assert imp.modifier == "weak"
        assert imp.path == "a.proto"
        assert imp.path_range.start == Position(0, 12)
        assert imp.path_range.end == Position(0, 21)


def test_frontend_parse_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "a.proto"
        path.write_text('syntax = "proto3";\nmessage A {}\n')

        frontend = ProtoFrontend()
        assert frontend.supports_file(path)
        assert not frontend.supports_file(Path(tmpdir) / "a.fdl")

        tree = frontend.parse_file(path)
        assert tree.uri == path.resolve().as_uri()
        assert tree.messages[0].name == "A"
