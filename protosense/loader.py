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

"""Load proto files from disk into an analyzer, following their imports."""

import logging
from pathlib import Path
from typing import List, Optional, Set

from protosense.analysis.analyzer import SemanticAnalyzer
from protosense.frontend import ProtoFrontend
from protosense.wellknown import builtin_uri, is_well_known_import

logger = logging.getLogger(__name__)


def resolve_import_path(
    import_path: str,
    importing_file: Path,
    import_paths: List[Path],
) -> Optional[Path]:
    """Locate the file named by an ``import`` statement on disk.

    The importing file's own directory is searched first, then each of
    ``import_paths``. Returns the resolved path of the first existing file,
    or None.
    """
    for root in [importing_file.parent, *import_paths]:
        candidate = (root / import_path).resolve()
        if candidate.is_file():
            return candidate
    return None


def load_workspace(
    analyzer: SemanticAnalyzer,
    files: List[Path],
    import_paths: Optional[List[Path]] = None,
) -> List[str]:
    """
    Parse ``files`` and everything they import into ``analyzer``.

    Imports served by a registered well-known stub are not read from disk.
    Each file is loaded once, so import cycles terminate.

    Returns:
        URIs of the loaded files, in load order

    Imports that cannot be read or decoded are logged and skipped.

    Raises:
        OSError: if one of ``files`` cannot be read
        UnicodeDecodeError: if one of ``files`` is not UTF-8
    """
    if import_paths is None:
        import_paths = []
    frontend = ProtoFrontend()
    visited: Set[Path] = set()
    loaded: List[str] = []

    def load(file_path: Path) -> None:
        file_path = file_path.resolve()
        if file_path in visited:
            return
        visited.add(file_path)

        tree = frontend.parse_file(file_path)
        analyzer.update_file(tree.uri, tree)
        loaded.append(tree.uri)

        for imp in tree.imports:
            if is_well_known_import(imp.path) and analyzer.get_file(builtin_uri(imp.path)):
                continue
            import_path = resolve_import_path(imp.path, file_path, import_paths)
            if import_path is None:
                logger.debug("Import %r of %s not found on disk", imp.path, file_path)
                continue
            try:
                load(import_path)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Could not read %s imported by %s: %s", import_path, file_path, e)

    for file_path in files:
        load(file_path)
    return loaded
