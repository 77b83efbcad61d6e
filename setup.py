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

import os
from os.path import abspath, join as pjoin

from setuptools import find_packages, setup

setup_dir = abspath(os.path.dirname(__file__))


def read_version():
    with open(pjoin(setup_dir, "protosense", "__init__.py"), encoding="utf-8") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("Unable to find __version__")


if __name__ == "__main__":
    setup(
        name="protosense",
        version=read_version(),
        description="Protocol Buffers parsing and semantic analysis for editors and tooling",
        license="Apache-2.0",
        python_requires=">=3.8",
        packages=find_packages(include=["protosense", "protosense.*"]),
        extras_require={"test": ["pytest"]},
        entry_points={"console_scripts": ["protosense=protosense.cli:main"]},
    )
