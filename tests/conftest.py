"""Shared pytest fixtures."""

import pytest

from fsctx.logger import setup_logging
from fsctx.state import FsTools


@pytest.fixture(scope="session", autouse=True)
def quiet_logging():
    """Route structlog through stdlib logging so nothing lands on stdout."""
    setup_logging(None)


@pytest.fixture
def session_file(tmp_path):
    return tmp_path / "sessions" / "fs.json"


@pytest.fixture
def state(session_file):
    return FsTools.from_file(str(session_file))


@pytest.fixture
def project(tmp_path):
    """A small project tree with ignore rules and hidden files."""
    root = tmp_path / "project"
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "build").mkdir()
    (root / "README.md").write_text("# demo\n")
    (root / "src" / "main.py").write_text("import os\n\ndef main():\n    return os.getcwd()\n")
    (root / "src" / "pkg" / "mod.py").write_text("VALUE = 1\n")
    (root / "build" / "out.txt").write_text("generated\n")
    (root / "debug.log").write_text("noise\n")
    (root / ".env").write_text("SECRET=1\n")
    (root / ".gitignore").write_text("build/\n*.log\n")
    return root
