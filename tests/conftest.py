"""Pytest configuration and fixtures for SourceLens tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from sourcelens.parser import CodeGraphBuilder


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def temp_home(temp_dir: Path, monkeypatch) -> Path:
    """Redirect config and state files into a temporary home."""
    home = temp_dir / "home"
    monkeypatch.setattr("sourcelens.config.BASE_DIR", home)
    monkeypatch.setattr("sourcelens.config.STATE_FILE", home / "state.json")
    monkeypatch.setattr("sourcelens.config.CONFIG_FILE", home / "config.toml")
    return home


@pytest.fixture
def sample_scripts_path() -> Path:
    """Get path to the sample script directory."""
    return Path(__file__).parent / "fixtures" / "sample_scripts"


@pytest.fixture
def scripts_copy(temp_dir: Path, sample_scripts_path: Path) -> Path:
    """A writable copy of the sample scripts."""
    target = temp_dir / "scripts"
    shutil.copytree(sample_scripts_path, target)
    return target


@pytest.fixture(scope="session")
def graph_builder() -> CodeGraphBuilder:
    builder = CodeGraphBuilder()
    if not builder.supports_language("javascript"):
        pytest.skip("tree-sitter-javascript grammar not installed")
    return builder


@pytest.fixture
def sample_js_code() -> str:
    """Sample JavaScript covering every function-like form."""
    return '''function fetchUser(id) {
  var url = buildUrl(id);
  return api.get(url);
}

var buildUrl = function (id) {
  return "/users/" + encodeURIComponent(id);
};

const render = (user) => {
  document.body.innerHTML = user.bio;
};

handler = function () {
  fetchUser(1).then(function (user) {
    render(user);
  });
};

class Widget {
  draw() {
    this.paint();
  }
  paint() {
    render(this.user);
  }
}

var helpers = {
  format(value) {
    return String(value);
  }
};

obj.prop = function () {
  return 1;
};
'''


def _build_program(total: int, blocks: dict) -> str:
    lines = [f"// line {n}" for n in range(1, total + 1)]
    for start, body in blocks.items():
        for offset, text in enumerate(body):
            lines[start - 1 + offset] = text
    return "\n".join(lines)


@pytest.fixture
def layered_program() -> str:
    """120 lines: foo (40-60) calls bar (100-110); baz (70-80) is unrelated."""
    foo = ["function foo(input) {", "  bar();"] + ["  // pad"] * 8 + ["  eval(input);"] + ["  // pad"] * 9 + ["}"]
    baz = ["function baz() {", "  bar();"] + ["  // pad"] * 8 + ["}"]
    bar = ["function bar() {"] + ["  // pad"] * 9 + ["}"]
    return _build_program(120, {40: foo, 70: baz, 100: bar})
