"""Tests for version management.

``dkp_server.__version__`` is resolved from the installed package metadata
(``pyproject.toml``). The FastAPI app and the root ``/`` endpoint must report
the same value.
"""

from __future__ import annotations

import re

import pytest

import dkp_server
from dkp_server.api.server import create_app

_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+(-[A-Za-z0-9]+(\.[A-Za-z0-9]+)*)?$")


@pytest.mark.unit
class TestVersionAttribute:
    def test_version_is_a_non_empty_string(self) -> None:
        assert isinstance(dkp_server.__version__, str)
        assert dkp_server.__version__

    def test_version_matches_semver(self) -> None:
        assert _SEMVER_RE.match(dkp_server.__version__)


@pytest.mark.api
class TestVersionInApp:
    def test_openapi_version_matches_package(self, engine) -> None:
        assert create_app(engine).version == dkp_server.__version__

    def test_root_endpoint_version_matches_package(self, test_client) -> None:
        assert test_client.get("/").json()["version"] == dkp_server.__version__
