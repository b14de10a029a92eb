import errno

from pairdiff.core.errors import ResolutionError, describe_os_error
from pairdiff.core.models import Verdict


class TestReporter:
    def test_message_adds_newline(self, reporter):
        reporter.message("Only in a: x")
        reporter.message("done\n")
        assert reporter.output == "Only in a: x\ndone\n"

    def test_messages_interleave_with_output_in_order(self, reporter):
        reporter.message("Only in a: x")
        reporter.write(b"1c1\n")
        reporter.message("Only in b: y")
        assert reporter.output == "Only in a: x\n1c1\nOnly in b: y\n"

    def test_error_is_attributed_and_counted(self, reporter):
        reporter.error("some/file", OSError(errno.EACCES, "ignored"))
        assert reporter.errors == "pairdiff: some/file: Permission denied\n"
        assert reporter.error_count == 1

    def test_diagnostic(self, reporter):
        reporter.diagnostic("something broke")
        assert reporter.errors == "pairdiff: something broke\n"
        assert reporter.error_count == 0

    def test_write_text_with_encoding(self, reporter):
        reporter.write_text("caf\xe9\n", "latin-1")
        assert reporter.stream.getvalue() == b"caf\xe9\n"


class TestErrors:
    def test_resolution_error(self):
        error = ResolutionError("x", OSError(errno.ENOENT, "No such file"))
        assert error.errno == errno.ENOENT
        assert str(error) == "x: No such file or directory"

    def test_describe_without_errno(self):
        assert describe_os_error(OSError("custom")) == "custom"


class TestVerdict:
    def test_worst(self):
        assert Verdict.worst() == Verdict.SUCCESS
        assert Verdict.worst(Verdict.SUCCESS, Verdict.DIFFERENT) == Verdict.DIFFERENT
        assert Verdict.worst(Verdict.TROUBLE, Verdict.DIFFERENT, Verdict.SUCCESS) == Verdict.TROUBLE

    def test_exit_status(self):
        assert [int(v) for v in Verdict] == [0, 1, 2]
