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

"""Semantic analysis: symbol table, import resolution and validation."""

from protosense.analysis.analyzer import AnalyzerOptions, SemanticAnalyzer
from protosense.analysis.symbols import FileRecord, ImportResolution, Symbol, SymbolKind
from protosense.analysis.validator import SchemaValidator, ValidationIssue, validate_file

__all__ = [
    "AnalyzerOptions",
    "SemanticAnalyzer",
    "FileRecord",
    "ImportResolution",
    "Symbol",
    "SymbolKind",
    "SchemaValidator",
    "ValidationIssue",
    "validate_file",
]
