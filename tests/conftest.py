import io

import pytest

from pairdiff.core.config import ConfigBuilder
from pairdiff.core.diff.text_diff import TextDiffEngine
from pairdiff.core.engine import ComparisonEngine
from pairdiff.core.reporter import Reporter
from pairdiff.core.resolver import EntityResolver


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Never pick up a real user defaults file."""
    monkeypatch.setenv("PAIRDIFF_CONFIG", str(tmp_path / "no-such-settings.json"))


class CapturingReporter(Reporter):
    """Reporter writing to in-memory streams."""

    def __init__(self):
        super().__init__(io.BytesIO(), io.StringIO())

    @property
    def output(self):
        return self.stream.getvalue().decode("utf-8", "surrogateescape")

    @property
    def errors(self):
        return self.error_stream.getvalue()


@pytest.fixture
def reporter():
    return CapturingReporter()


def write(path, content):
    """Create a file with text or bytes content and return its path as str."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return str(path)


def build_config(configure=None):
    builder = ConfigBuilder()
    if configure is not None:
        configure(builder)
    return builder.finalize()


@pytest.fixture
def make_engine(reporter):
    """Build an engine around a config; returns (engine, reporter)."""

    def factory(configure=None, content_differ=None, stdin=None):
        config = build_config(configure)
        differ = content_differ or TextDiffEngine(config, reporter)
        resolver = EntityResolver(config, stdin=stdin, clock=lambda: 0.0)
        return ComparisonEngine(config, reporter, differ, resolver=resolver), reporter

    return factory


@pytest.fixture
def run_diff(tmp_path, make_engine):
    """Compare two text contents; returns (verdict, output)."""

    def runner(old, new, configure=None):
        a = write(tmp_path / "old.txt", old)
        b = write(tmp_path / "new.txt", new)
        engine, rep = make_engine(configure)
        verdict = engine.compare_files(a, b)
        return verdict, rep.output

    return runner
