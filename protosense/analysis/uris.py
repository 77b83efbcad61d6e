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

"""URI and path helpers.

Import paths are POSIX strings regardless of the host, so everything here
works on forward-slash paths via ``posixpath``.
"""

import posixpath
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

FILE_SCHEME = "file://"


def normalize_path(path: str) -> str:
    """Convert backslashes and drop a trailing slash."""
    normalized = path.replace("\\", "/")
    if len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized.rstrip("/") or "/"
    return normalized


def uri_to_path(uri: str) -> str:
    """Return the forward-slash filesystem path of a ``file://`` URI.

    Anything that is not a file URI is returned with only its slashes
    normalized.
    """
    if uri.startswith(FILE_SCHEME):
        path = unquote(uri[len(FILE_SCHEME) :])
        # file:///C:/x -> C:/x
        if len(path) > 2 and path[0] == "/" and path[2] == ":":
            path = path[1:]
        return normalize_path(path)
    return normalize_path(uri)


def path_to_uri(path) -> str:
    """Return the ``file://`` URI of an absolute path."""
    return Path(path).resolve().as_uri()


def dirname(path: str) -> str:
    return posixpath.dirname(path)


def basename(path: str) -> str:
    return posixpath.basename(path)


def relative_to(path: str, root: str) -> Optional[str]:
    """Return ``path`` relative to ``root`` if it lies inside it."""
    root = normalize_path(root)
    prefix = root if root.endswith("/") else root + "/"
    if path.startswith(prefix):
        return path[len(prefix) :]
    return None


def is_suffix_at_boundary(path: str, suffix: str) -> bool:
    """True if ``path`` ends with ``suffix`` starting at a directory boundary."""
    return path == suffix or path.endswith("/" + suffix)
