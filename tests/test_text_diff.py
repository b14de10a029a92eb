import io

import pytest
from conftest import build_config

from pairdiff.core.config import OutputStyle, WhitespaceMode
from pairdiff.core.diff.formats import Change
from pairdiff.core.diff.text_diff import TextDiffEngine, split_newline
from pairdiff.core.errors import ResolutionError
from pairdiff.core.models import Verdict
from pairdiff.core.resolver import EntityResolver
from pairdiff.services.file_io import FileIOService


def engine_for(configure=None, reporter=None):
    return TextDiffEngine(build_config(configure), reporter)


class TestLineKey:
    @pytest.mark.parametrize(
        "configure, a, b",
        [
            (lambda b: b.ignore_all_space(), "a b\tc\n", "abc\n"),
            (lambda b: b.ignore_space_change(), "a  b \n", "a b\n"),
            (lambda b: b.ignore_space_change(), "a\t\tb\n", "a b\n"),
            (lambda b: b.ignore_trailing_space(), "abc  \t\n", "abc\n"),
            (lambda b: b.ignore_tab_expansion(), "\tx\n", "        x\n"),
            (lambda b: setattr(b, "ignore_case", True), "HeLLo\n", "hello\n"),
        ],
    )
    def test_equivalent_lines(self, configure, a, b):
        engine = engine_for(configure)
        assert engine.line_key(a) == engine.line_key(b)

    @pytest.mark.parametrize(
        "configure, a, b",
        [
            (None, "a b\n", "ab\n"),
            (lambda b: b.ignore_space_change(), "a b\n", "ab\n"),
            (lambda b: b.ignore_trailing_space(), " abc\n", "abc\n"),
            (lambda b: b.ignore_all_space(), "abc\n", "abc"),
        ],
    )
    def test_distinct_lines(self, configure, a, b):
        engine = engine_for(configure)
        assert engine.line_key(a) != engine.line_key(b)

    def test_split_newline(self):
        assert split_newline("abc\n") == ("abc", "\n")
        assert split_newline("abc") == ("abc", "")


class TestComputeChanges:
    def test_merged_change(self):
        engine = engine_for()
        changes = engine.compute_changes(["a\n", "b\n", "c\n"], ["a\n", "B\n", "c\n", "d\n"])
        assert changes == [Change(1, 2, 1, 2), Change(3, 3, 3, 4)]

    def test_no_changes(self):
        assert engine_for().compute_changes(["a\n"], ["a\n"]) == []

    def test_blank_line_change_is_ignorable(self):
        engine = engine_for(lambda b: setattr(b, "ignore_blank_lines", True))
        changes = engine.compute_changes(["a\n", "\n", "b\n"], ["a\n", "b\n"])
        assert changes == [Change(1, 2, 1, 1, ignorable=True)]

    def test_whitespace_only_line_is_blank_with_trailing_space(self):
        def configure(builder):
            builder.ignore_blank_lines = True
            builder.ignore_trailing_space()

        engine = engine_for(configure)
        assert engine.is_trivial("   \n")
        assert not engine_for(lambda b: setattr(b, "ignore_blank_lines", True)).is_trivial("   \n")

    def test_matching_lines_are_ignorable(self):
        engine = engine_for(lambda b: b.ignore_matching_lines("^#"))
        changes = engine.compute_changes(["a\n", "# one\n"], ["a\n", "# two\n"])
        assert all(change.ignorable for change in changes)

    def test_mixed_change_is_not_ignorable(self):
        engine = engine_for(lambda b: b.ignore_matching_lines("^#"))
        changes = engine.compute_changes(["# one\n", "x\n"], ["# two\n", "y\n"])
        assert changes == [Change(0, 2, 0, 2)]


class TestDiff2Files:
    def test_read_failure_is_trouble(self, reporter):
        class Broken(io.BytesIO):
            def read(self, *args):
                raise OSError(5, "Input/output error")

        config = build_config()
        engine = TextDiffEngine(config, reporter)
        cmp = EntityResolver(config, stdin=io.BytesIO()).resolve_pair("-", "-")
        assert engine.diff_2_files(cmp, (Broken(), Broken())) == Verdict.TROUBLE
        assert reporter.errors == "pairdiff: -: Input/output error\n"

    def test_identical(self, run_diff):
        assert run_diff("a\nb\n", "a\nb\n") == (Verdict.SUCCESS, "")

    def test_ignore_all_space(self, run_diff):
        assert run_diff("a b\n", "ab\n", lambda b: b.ignore_all_space()) == (Verdict.SUCCESS, "")

    def test_ignore_case(self, run_diff):
        configure = lambda b: setattr(b, "ignore_case", True)  # noqa: E731
        assert run_diff("ABC\n", "abc\n", configure) == (Verdict.SUCCESS, "")

    def test_ignore_blank_lines(self, run_diff):
        configure = lambda b: setattr(b, "ignore_blank_lines", True)  # noqa: E731
        assert run_diff("a\n\nb\n", "a\nb\n", configure) == (Verdict.SUCCESS, "")

    def test_ignore_matching_lines(self, run_diff):
        configure = lambda b: b.ignore_matching_lines("^#")  # noqa: E731
        assert run_diff("a\n# x\n", "a\n# y\n", configure) == (Verdict.SUCCESS, "")

    def test_blank_line_inside_real_change(self, run_diff):
        def configure(builder):
            builder.ignore_blank_lines = True
            builder.request_context(OutputStyle.UNIFIED, 1)
            builder.add_label("a")
            builder.add_label("b")

        verdict, output = run_diff("x\n\ny\n", "X\ny\n", configure)
        assert verdict == Verdict.DIFFERENT
        assert output == "--- a\n+++ b\n@@ -1,3 +1,2 @@\n-x\n-\n+X\n y\n"

    def test_strip_trailing_cr(self, run_diff):
        configure = lambda b: setattr(b, "strip_trailing_cr", True)  # noqa: E731
        assert run_diff("a\r\nb\r\n", "a\nb\n", configure) == (Verdict.SUCCESS, "")
        verdict, _ = run_diff("a\r\nb\r\n", "a\nb\n")
        assert verdict == Verdict.DIFFERENT

    def test_binary_files(self, run_diff, tmp_path):
        verdict, output = run_diff(b"a\x00b", b"a\x00c")
        assert verdict == Verdict.DIFFERENT
        assert output == f"Binary files {tmp_path / 'old.txt'} and {tmp_path / 'new.txt'} differ\n"

    def test_identical_binary_files(self, run_diff):
        assert run_diff(b"\x00\x01", b"\x00\x01") == (Verdict.SUCCESS, "")

    def test_binary_files_brief(self, run_diff, tmp_path):
        verdict, output = run_diff(b"a\x00b", b"a\x00c", lambda b: setattr(b, "brief", True))
        assert output == f"Files {tmp_path / 'old.txt'} and {tmp_path / 'new.txt'} differ\n"

    def test_text_option_forces_line_diff(self, run_diff):
        verdict, output = run_diff(b"a\x00\nsame\n", b"b\x00\nsame\n", lambda b: setattr(b, "text", True))
        assert verdict == Verdict.DIFFERENT
        assert output == "1c1\n< a\x00\n---\n> b\x00\n"

    def test_brief_ignores_whitespace_differences(self, run_diff):
        def configure(builder):
            builder.brief = True
            builder.ignore_all_space()

        assert run_diff("a b\n", "ab\n", configure) == (Verdict.SUCCESS, "")

    def test_non_utf8_content_round_trips(self, run_diff):
        verdict, output = run_diff(b"caf\xe9\n", b"cafe\n")
        assert verdict == Verdict.DIFFERENT
        assert output.encode("utf-8", "surrogateescape").startswith(b"1c1\n< caf")


class TestFileIOService:
    def test_split_lines(self):
        assert FileIOService.split_lines("") == []
        assert FileIOService.split_lines("a\nb") == ["a\n", "b"]
        assert FileIOService.split_lines("a\n\n") == ["a\n", "\n"]

    def test_is_binary(self):
        service = FileIOService(binary_check_size=4)
        assert service.is_binary(b"ab\x00c")
        assert not service.is_binary(b"abcd\x00")

    def test_read_none_is_empty(self):
        assert FileIOService().read_stream(None, "x") == b""

    def test_read_error(self):
        class Broken(io.BytesIO):
            def read(self, *args):
                raise OSError(5, "Input/output error")

        with pytest.raises(ResolutionError) as excinfo:
            FileIOService().read_stream(Broken(), "name")
        assert excinfo.value.name == "name"
        assert excinfo.value.errno == 5

    def test_ascii_decodes_as_default(self):
        pair = FileIOService().decode_pair(b"a\nb\n", b"a\n")
        assert pair.encoding == "utf-8"
        assert pair.lines == (["a\n", "b\n"], ["a\n"])

    def test_undecodable_bytes_survive(self):
        pair = FileIOService().decode_pair(b"\xff\xfe\xfd\n", b"")
        line = pair.lines[0][0]
        assert line.encode(pair.encoding, "surrogateescape") == b"\xff\xfe\xfd\n"


def test_whitespace_mode_order():
    assert WhitespaceMode.ALL_SPACE > WhitespaceMode.SPACE_CHANGE > WhitespaceMode.TRAILING_SPACE
