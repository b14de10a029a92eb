import errno
import io
import os

import pytest
from conftest import write

from pairdiff.core import engine as engine_module
from pairdiff.core.config import OutputStyle
from pairdiff.core.errors import OperationalFatal
from pairdiff.core.models import (
    Action,
    Comparison,
    ComparisonSlot,
    FileKind,
    Metadata,
    NONEXISTENT,
    Verdict,
)


class CountingDiffer:
    """Content differ that records its calls instead of comparing."""

    def __init__(self, verdict=Verdict.SUCCESS):
        self.verdict = verdict
        self.calls = []

    def diff_2_files(self, cmp, streams):
        self.calls.append((cmp, streams))
        return self.verdict


def recursive(builder):
    builder.recursive = True


def brief_binary(builder):
    builder.brief = True
    builder.binary = True


class TestClassification:
    def test_identical_files(self, tmp_path, make_engine):
        a = write(tmp_path / "a", "same\n")
        b = write(tmp_path / "b", "same\n")
        engine, rep = make_engine()
        assert engine.compare_files(a, b) == Verdict.SUCCESS
        assert rep.output == ""

    def test_different_files(self, tmp_path, make_engine):
        a = write(tmp_path / "a", "one\n")
        b = write(tmp_path / "b", "two\n")
        engine, rep = make_engine()
        assert engine.compare_files(a, b) == Verdict.DIFFERENT
        assert rep.output == "1c1\n< one\n---\n> two\n"

    def test_resolution_error(self, tmp_path, make_engine):
        a = write(tmp_path / "a", "x\n")
        missing = str(tmp_path / "missing")
        engine, rep = make_engine()
        cmp = engine.resolver.resolve_pair(missing, a)
        assert engine.classify(cmp) == Action.RESOLUTION_ERROR
        assert engine.compare_files(missing, a) == Verdict.TROUBLE
        assert rep.errors == f"pairdiff: {missing}: No such file or directory\n"
        assert rep.error_count == 1

    def test_both_nonexistent_is_nothing(self, make_engine):
        engine, _ = make_engine()
        slot = ComparisonSlot("x", NONEXISTENT, Metadata.absent(FileKind.UNKNOWN))
        cmp = Comparison((slot, slot))
        assert engine.classify(cmp) == Action.NOTHING
        assert engine.dispatch(cmp, Action.NOTHING) == Verdict.SUCCESS

    def test_same_file_skips_content_comparison(self, tmp_path, make_engine):
        a = write(tmp_path / "a", "x\n")
        differ = CountingDiffer()
        engine, _ = make_engine(content_differ=differ)
        assert engine.classify(engine.resolver.resolve_pair(a, a)) == Action.SAME_FILE
        assert engine.compare_files(a, a) == Verdict.SUCCESS
        assert differ.calls == []

    def test_same_file_shares_one_stream(self, tmp_path, make_engine):
        a = write(tmp_path / "a", "x\n")
        differ = CountingDiffer()
        engine, _ = make_engine(lambda b: b.set_style(OutputStyle.SDIFF), content_differ=differ)
        assert engine.compare_files(a, a) == Verdict.SUCCESS
        (cmp, streams), = differ.calls
        assert streams[0] is streams[1]
        assert streams[0].closed

    def test_classify_is_repeatable(self, tmp_path, make_engine):
        a = write(tmp_path / "a", "x\n")
        b = write(tmp_path / "b", "y\n")
        engine, rep = make_engine()
        cmp = engine.resolver.resolve_pair(a, b)
        assert engine.classify(cmp) == engine.classify(cmp) == Action.CONTENT
        assert rep.output == ""

    def test_binary_quick_reject(self, tmp_path, make_engine):
        a = write(tmp_path / "a", "short\n")
        b = write(tmp_path / "b", "much longer\n")
        differ = CountingDiffer()
        engine, rep = make_engine(brief_binary, content_differ=differ)
        assert engine.compare_files(a, b) == Verdict.DIFFERENT
        assert rep.output == f"Files {a} and {b} differ\n"
        assert differ.calls == []

    def test_quick_reject_needs_nonempty_sides(self, tmp_path, make_engine):
        a = write(tmp_path / "a", "")
        b = write(tmp_path / "b", "text\n")
        engine, _ = make_engine(brief_binary)
        assert engine.classify(engine.resolver.resolve_pair(a, b)) == Action.CONTENT

    def test_quick_reject_needs_different_sizes(self, tmp_path, make_engine):
        a = write(tmp_path / "a", "abc\n")
        b = write(tmp_path / "b", "abd\n")
        engine, rep = make_engine(brief_binary)
        assert engine.classify(engine.resolver.resolve_pair(a, b)) == Action.CONTENT
        assert engine.compare_files(a, b) == Verdict.DIFFERENT
        assert rep.output == f"Files {a} and {b} differ\n"

    def test_report_identical_files(self, tmp_path, make_engine):
        a = write(tmp_path / "a", "same\n")
        b = write(tmp_path / "b", "same\n")

        def configure(builder):
            builder.report_identical_files = True

        engine, rep = make_engine(configure)
        assert engine.compare_files(a, b) == Verdict.SUCCESS
        assert rep.output == f"Files {a} and {b} are identical\n"

    def test_new_file_compares_against_empty(self, tmp_path, make_engine):
        a = str(tmp_path / "missing")
        b = write(tmp_path / "b", "x\n")
        differ = CountingDiffer(Verdict.DIFFERENT)

        def configure(builder):
            builder.new_file = True

        engine, _ = make_engine(configure, content_differ=differ)
        assert engine.compare_files(a, b) == Verdict.DIFFERENT
        (cmp, streams), = differ.calls
        assert streams[0] is None
        assert streams[1] is not None

    def test_new_file_output(self, tmp_path, make_engine):
        a = str(tmp_path / "missing")
        b = write(tmp_path / "b", "x\n")

        def configure(builder):
            builder.new_file = True

        engine, rep = make_engine(configure)
        assert engine.compare_files(a, b) == Verdict.DIFFERENT
        assert rep.output == "0a1\n> x\n"

    def test_every_open_failure_is_reported(self, tmp_path, make_engine, monkeypatch):
        a = write(tmp_path / "a", "one\n")
        b = write(tmp_path / "b", "two\n")

        def refuse(name, mode):
            raise PermissionError(errno.EACCES, "Permission denied", name)

        monkeypatch.setattr(engine_module, "open", refuse, raising=False)
        differ = CountingDiffer()
        engine, rep = make_engine(content_differ=differ)
        assert engine.compare_files(a, b) == Verdict.TROUBLE
        assert rep.errors == (
            f"pairdiff: {a}: {os.strerror(errno.EACCES)}\n"
            f"pairdiff: {b}: {os.strerror(errno.EACCES)}\n"
        )
        assert differ.calls == []


class TestStandardInput:
    def test_stdin_is_read_and_left_open(self, tmp_path, make_engine):
        b = write(tmp_path / "b", "line\n")
        stdin = io.BytesIO(b"line\n")
        engine, rep = make_engine(stdin=stdin)
        assert engine.compare_files("-", b) == Verdict.SUCCESS
        assert not stdin.closed

    def test_stdin_difference(self, tmp_path, make_engine):
        b = write(tmp_path / "b", "other\n")
        engine, rep = make_engine(stdin=io.BytesIO(b"line\n"))
        assert engine.compare_files("-", b) == Verdict.DIFFERENT
        assert rep.output == "1c1\n< line\n---\n> other\n"

    def test_stdin_against_directory_is_fatal(self, tmp_path, make_engine):
        (tmp_path / "d").mkdir()
        engine, _ = make_engine(stdin=io.BytesIO(b""))
        with pytest.raises(OperationalFatal, match="cannot compare '-' to a directory"):
            engine.compare_files("-", str(tmp_path / "d"))


class TestDirectoryOperand:
    def test_directory_against_file(self, tmp_path, make_engine):
        write(tmp_path / "d" / "f.txt", "inside\n")
        f = write(tmp_path / "f.txt", "outside\n")
        engine, rep = make_engine()
        assert engine.compare_files(str(tmp_path / "d"), f) == Verdict.DIFFERENT
        assert rep.output == "1c1\n< inside\n---\n> outside\n"

    def test_file_against_directory(self, tmp_path, make_engine):
        write(tmp_path / "d" / "f.txt", "same\n")
        f = write(tmp_path / "f.txt", "same\n")
        engine, _ = make_engine()
        assert engine.compare_files(f, str(tmp_path / "d")) == Verdict.SUCCESS

    def test_missing_counterpart_in_directory(self, tmp_path, make_engine):
        (tmp_path / "d").mkdir()
        f = write(tmp_path / "f.txt", "x\n")
        engine, rep = make_engine()
        assert engine.compare_files(str(tmp_path / "d"), f) == Verdict.TROUBLE
        expected = os.path.join(str(tmp_path / "d"), "f.txt")
        assert rep.errors == f"pairdiff: {expected}: No such file or directory\n"

    def test_case_insensitive_lookup(self, tmp_path, make_engine):
        write(tmp_path / "d" / "README", "same\n")
        f = write(tmp_path / "readme", "same\n")

        def configure(builder):
            builder.ignore_file_name_case = True

        engine, _ = make_engine(configure)
        assert engine.compare_files(str(tmp_path / "d"), f) == Verdict.SUCCESS

    def test_ifdef_with_directories_is_fatal(self, tmp_path, make_engine):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        engine, _ = make_engine(lambda b: b.define_ifdef("X"))
        with pytest.raises(OperationalFatal, match="-D option not supported with directories"):
            engine.compare_files(str(tmp_path / "a"), str(tmp_path / "b"))


class TestDirectories:
    @pytest.fixture
    def trees(self, tmp_path):
        a, b = tmp_path / "a", tmp_path / "b"
        write(a / "common", "1\n")
        write(b / "common", "1\n")
        write(a / "changed", "old\n")
        write(b / "changed", "new\n")
        write(a / "left", "l\n")
        write(b / "right", "r\n")
        write(a / "sub" / "deep", "x\n")
        write(b / "sub" / "deep", "y\n")
        return str(a), str(b)

    def test_top_level_only(self, trees, make_engine):
        a, b = trees
        engine, rep = make_engine()
        assert engine.compare_files(a, b) == Verdict.DIFFERENT
        sep = os.sep
        assert rep.output == (
            f"diff {a}{sep}changed {b}{sep}changed\n"
            "1c1\n< old\n---\n> new\n"
            f"Only in {a}: left\n"
            f"Only in {b}: right\n"
            f"Common subdirectories: {a}{sep}sub and {b}{sep}sub\n"
        )

    def test_recursive(self, trees, make_engine):
        a, b = trees
        engine, rep = make_engine(recursive)
        assert engine.compare_files(a, b) == Verdict.DIFFERENT
        sep = os.sep
        assert f"diff {a}{sep}sub{sep}deep {b}{sep}sub{sep}deep\n1c1\n< x\n---\n> y\n" in rep.output
        assert "Common subdirectories" not in rep.output

    def test_brief_recursive(self, trees, make_engine):
        a, b = trees

        def configure(builder):
            builder.recursive = True
            builder.brief = True

        engine, rep = make_engine(configure)
        assert engine.compare_files(a, b) == Verdict.DIFFERENT
        sep = os.sep
        assert rep.output == (
            f"Files {a}{sep}changed and {b}{sep}changed differ\n"
            f"Only in {a}: left\n"
            f"Only in {b}: right\n"
            f"Files {a}{sep}sub{sep}deep and {b}{sep}sub{sep}deep differ\n"
        )

    def test_identical_trees(self, tmp_path, make_engine):
        for side in ("a", "b"):
            write(tmp_path / side / "f", "same\n")
            write(tmp_path / side / "s" / "g", "same\n")
        engine, rep = make_engine(recursive)
        assert engine.compare_files(str(tmp_path / "a"), str(tmp_path / "b")) == Verdict.SUCCESS
        assert rep.output == ""

    def test_new_file_in_directories(self, tmp_path, make_engine):
        write(tmp_path / "a" / "only", "x\n")
        (tmp_path / "b").mkdir()

        def configure(builder):
            builder.new_file = True

        engine, rep = make_engine(configure)
        assert engine.compare_files(str(tmp_path / "a"), str(tmp_path / "b")) == Verdict.DIFFERENT
        assert rep.output.endswith("1d0\n< x\n")

    def test_unidirectional_new_file(self, tmp_path, make_engine):
        write(tmp_path / "a" / "left", "l\n")
        write(tmp_path / "b" / "right", "r\n")

        def configure(builder):
            builder.unidirectional_new_file = True

        engine, rep = make_engine(configure)
        a, b = str(tmp_path / "a"), str(tmp_path / "b")
        assert engine.compare_files(a, b) == Verdict.DIFFERENT
        assert f"Only in {a}: left\n" in rep.output
        assert rep.output.endswith("0a1\n> r\n")

    def test_new_directory_is_walked_with_recursion(self, tmp_path, make_engine):
        write(tmp_path / "b" / "sub" / "f", "x\n")
        (tmp_path / "a").mkdir()

        def configure(builder):
            builder.recursive = True
            builder.new_file = True

        engine, rep = make_engine(configure)
        assert engine.compare_files(str(tmp_path / "a"), str(tmp_path / "b")) == Verdict.DIFFERENT
        assert rep.output.endswith("0a1\n> x\n")

    def test_new_directory_without_new_file(self, tmp_path, make_engine):
        write(tmp_path / "b" / "sub" / "f", "x\n")
        (tmp_path / "a").mkdir()
        engine, rep = make_engine(recursive)
        b = str(tmp_path / "b")
        assert engine.compare_files(str(tmp_path / "a"), b) == Verdict.DIFFERENT
        assert rep.output == f"Only in {b}: sub\n"

    def test_kind_mismatch(self, tmp_path, make_engine):
        (tmp_path / "a" / "x").mkdir(parents=True)
        write(tmp_path / "b" / "x", "")
        engine, rep = make_engine(recursive)
        a, b = str(tmp_path / "a"), str(tmp_path / "b")
        assert engine.compare_files(a, b) == Verdict.DIFFERENT
        sep = os.sep
        assert rep.output == (
            f"File {a}{sep}x is a directory while file {b}{sep}x is a regular empty file\n"
        )

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="needs symlinks")
    def test_directory_loop(self, tmp_path, make_engine):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        os.symlink(".", str(tmp_path / "a" / "loop"))
        os.symlink(".", str(tmp_path / "b" / "loop"))
        engine, rep = make_engine(recursive)
        a = str(tmp_path / "a")
        assert engine.compare_files(a, str(tmp_path / "b")) == Verdict.TROUBLE
        assert rep.errors == f"pairdiff: {a}{os.sep}loop: recursive directory loop\n"


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="needs symlinks")
class TestSymlinks:
    @pytest.fixture
    def no_deref(self):
        def configure(builder):
            builder.no_dereference = True
        return configure

    def test_same_target(self, tmp_path, make_engine, no_deref):
        os.symlink("target", str(tmp_path / "l1"))
        os.symlink("target", str(tmp_path / "l2"))
        engine, rep = make_engine(no_deref)
        assert engine.compare_files(str(tmp_path / "l1"), str(tmp_path / "l2")) == Verdict.SUCCESS
        assert rep.output == ""

    def test_different_targets(self, tmp_path, make_engine, no_deref):
        l1, l2 = str(tmp_path / "l1"), str(tmp_path / "l2")
        os.symlink("one", l1)
        os.symlink("two", l2)
        engine, rep = make_engine(no_deref)
        assert engine.compare_files(l1, l2) == Verdict.DIFFERENT
        assert engine.compare_files(l2, l1) == Verdict.DIFFERENT
        assert rep.output == (
            f"Symbolic links {l1} and {l2} differ\n"
            f"Symbolic links {l2} and {l1} differ\n"
        )

    def test_link_compared_with_itself(self, tmp_path, make_engine, no_deref):
        link = str(tmp_path / "l")
        os.symlink("dangling", link)
        engine, _ = make_engine(no_deref)
        assert engine.compare_files(link, link) == Verdict.SUCCESS

    def test_link_against_regular_file(self, tmp_path, make_engine, no_deref):
        link = str(tmp_path / "l")
        os.symlink("target", link)
        f = write(tmp_path / "f", "x\n")
        engine, rep = make_engine(no_deref)
        assert engine.compare_files(link, f) == Verdict.DIFFERENT
        assert rep.output == f"File {link} is a symbolic link while file {f} is a regular file\n"
