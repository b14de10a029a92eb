"""
Main entry point for pairdiff.

This module handles:
- Command line argument parsing
- Logging configuration
- Loading user defaults
- Running the comparisons and computing the exit status
- Exception handling
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import Callable, List, Optional

from pairdiff import __version__
from pairdiff.core.config import (
    CONTEXT_MAX,
    DEFAULT_CONTEXT,
    ComparisonConfig,
    ConfigBuilder,
    FormatIndex,
    OutputStyle,
)
from pairdiff.core.diff.text_diff import TextDiffEngine
from pairdiff.core.engine import ComparisonEngine
from pairdiff.core.errors import DiffError, UsageError
from pairdiff.core.folder.scanner import PatternMatcher
from pairdiff.core.models import Verdict
from pairdiff.core.reporter import Reporter
from pairdiff.services.settings import SettingsManager


# =============================================================================
# Constants
# =============================================================================

APP_NAME = "pairdiff"
APP_VERSION = __version__

EXIT_TROUBLE = int(Verdict.TROUBLE)

_NUMERIC_CONTEXT = re.compile(r"^-(\d+)$")


# =============================================================================
# Logging Setup
# =============================================================================

class LogFormatter(logging.Formatter):
    """Custom log formatter with colors for console."""

    COLORS = {
        logging.INFO: '\033[32m',      # Green
        logging.WARNING: '\033[33m',   # Yellow
        logging.ERROR: '\033[31m',     # Red
        logging.CRITICAL: '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)

        if self.use_colors:
            color = self.COLORS.get(record.levelno, '')
            return f"{color}{formatted}{self.RESET}"

        return formatted


def setup_logging(level: str = "WARNING", log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure logging.

    Log records go to standard error so they never mix with diff output.

    Args:
        level: Log level string
        log_file: Optional file path for logging

    Returns:
        Root logger instance
    """
    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers
    root_logger.handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(LogFormatter(use_colors=True))
    root_logger.addHandler(console_handler)

    # File handler
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(
            log_file,
            encoding='utf-8'
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(LogFormatter(use_colors=False))
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger('chardet').setLevel(logging.WARNING)

    return root_logger


# =============================================================================
# Argument Parsing
# =============================================================================

def _numeric(name: str, minimum: int, cap: Optional[int] = None) -> Callable[[str], int]:
    """argparse type for a bounded integer option value."""
    def convert(value: str) -> int:
        try:
            number = int(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid {name} '{value}'")
        if number < minimum:
            raise argparse.ArgumentTypeError(f"invalid {name} '{value}'")
        return min(number, cap) if cap is not None else number
    convert.__name__ = name
    return convert


context_length = _numeric("context length", 0, CONTEXT_MAX)
width_value = _numeric("width", 1)
tabsize_value = _numeric("tabsize", 1)
horizon_value = _numeric("horizon length", 0, CONTEXT_MAX)


class BuilderAction(argparse.Action):
    """
    Feeds an option into the ConfigBuilder as soon as it is parsed.

    Options are applied in command-line order, so a conflicting repeat is
    detected where it occurs.
    """

    def __init__(self, option_strings, dest, apply, nargs=None, **kwargs):
        self.apply = apply
        kwargs.setdefault('default', argparse.SUPPRESS)
        super().__init__(option_strings, dest, nargs=nargs, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        self.apply(namespace.builder, values)


def _flag(group, *names: str, apply: Callable[[ConfigBuilder], None], help: str) -> None:
    group.add_argument(*names, action=BuilderAction, nargs=0,
                       apply=lambda builder, _: apply(builder), help=help)


def _value(group, *names: str, apply: Callable[[ConfigBuilder, object], None],
           help: str, metavar: str, type=str) -> None:
    group.add_argument(*names, action=BuilderAction, apply=apply, type=type,
                       metavar=metavar, help=help)


def _set_flag(name: str, value: bool = True) -> Callable[[ConfigBuilder], None]:
    return lambda builder: setattr(builder, name, value)


def _exclude_from(builder: ConfigBuilder, pattern_file: str) -> None:
    builder.exclude_patterns.extend(PatternMatcher.read_pattern_file(pattern_file))


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        usage="%(prog)s [OPTION]... FILES",
        description="Compare files line by line, or directories entry by entry.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
FILES are 'FILE1 FILE2' or 'DIR1 DIR2' or 'DIR FILE' or 'FILE DIR'.
If --from-file or --to-file is given, there are no restrictions on FILE(s).
If a FILE is '-', read standard input.
Exit status is 0 if inputs are the same, 1 if different, 2 if trouble.

Examples:
  %(prog)s -u old.txt new.txt        Unified diff of two files
  %(prog)s -r dir1 dir2              Compare two directory trees
  %(prog)s -qr dir1 dir2             Only report which files differ
        """
    )

    parser.add_argument('files', nargs='*', metavar='FILES', help=argparse.SUPPRESS)

    # Output style
    style = parser.add_argument_group('output style')
    _flag(style, '--normal', apply=lambda b: b.set_style(OutputStyle.NORMAL),
          help='output a normal diff (the default)')
    _flag(style, '-q', '--brief', apply=_set_flag('brief'),
          help='report only when files differ')
    _flag(style, '-s', '--report-identical-files', apply=_set_flag('report_identical_files'),
          help='report when two files are the same')
    _flag(style, '-c', apply=lambda b: b.request_context(OutputStyle.CONTEXT, None),
          help='output 3 lines of copied context')
    _flag(style, '--context', apply=lambda b: b.request_context(OutputStyle.CONTEXT, DEFAULT_CONTEXT),
          help='output 3 lines of copied context (--context=NUM for NUM)')
    _value(style, '-C', apply=lambda b, n: b.request_context(OutputStyle.CONTEXT, n),
           type=context_length, metavar='NUM', help='output NUM lines of copied context')
    _flag(style, '-u', apply=lambda b: b.request_context(OutputStyle.UNIFIED, None),
          help='output 3 lines of unified context')
    _flag(style, '--unified', apply=lambda b: b.request_context(OutputStyle.UNIFIED, DEFAULT_CONTEXT),
          help='output 3 lines of unified context (--unified=NUM for NUM)')
    _value(style, '-U', apply=lambda b, n: b.request_context(OutputStyle.UNIFIED, n),
           type=context_length, metavar='NUM', help='output NUM lines of unified context')
    _flag(style, '-e', '--ed', apply=lambda b: b.set_style(OutputStyle.ED),
          help='output an ed script')
    _flag(style, '-f', '--forward-ed', apply=lambda b: b.set_style(OutputStyle.FORWARD_ED),
          help='output something like an ed script in forward order')
    _flag(style, '-n', '--rcs', apply=lambda b: b.set_style(OutputStyle.RCS),
          help='output an RCS format diff')
    _flag(style, '-y', '--side-by-side', apply=lambda b: b.set_style(OutputStyle.SDIFF),
          help='output in two columns')
    _value(style, '-W', '--width', apply=lambda b, n: b.set_width(n), type=width_value,
           metavar='NUM', help='output at most NUM (default 130) print columns')
    _flag(style, '--left-column', apply=_set_flag('left_column'),
          help='output only the left column of common lines')
    _flag(style, '--suppress-common-lines', apply=_set_flag('suppress_common_lines'),
          help='do not output common lines')
    _flag(style, '-p', '--show-c-function', apply=lambda b: b.show_c_function_lines(),
          help='show which C function each change is in')
    _value(style, '-F', '--show-function-line', apply=lambda b, p: b.show_function_line(p),
           metavar='RE', help='show the most recent line matching RE')
    _value(style, '--label', apply=lambda b, label: b.add_label(label), metavar='LABEL',
           help='use LABEL instead of file name and timestamp (can be repeated)')
    _flag(style, '-t', '--expand-tabs', apply=_set_flag('expand_tabs'),
          help='expand tabs to spaces in output')
    _flag(style, '-T', '--initial-tab', apply=_set_flag('initial_tab'),
          help='make tabs line up by prepending a tab')
    _value(style, '--tabsize', apply=lambda b, n: b.set_tabsize(n), type=tabsize_value,
           metavar='NUM', help='tab stops every NUM (default 8) print columns')
    _flag(style, '--suppress-blank-empty', apply=_set_flag('suppress_blank_empty'),
          help='suppress space or tab before empty output lines')

    # ifdef formats
    ifdef = parser.add_argument_group('merged output')
    _value(ifdef, '-D', '--ifdef', apply=lambda b, name: b.define_ifdef(name), metavar='NAME',
           help="output merged file with '#ifdef NAME' diffs")
    for index, option in zip(FormatIndex, ('--unchanged-group-format', '--old-group-format',
                                           '--new-group-format', '--changed-group-format')):
        _value(ifdef, option, apply=lambda b, fmt, index=index: b.set_group_format(index, fmt),
               metavar='GFMT', help=f'format {index.name.lower()} input groups with GFMT')
    _value(ifdef, '--line-format', apply=lambda b, fmt: b.set_line_format(None, fmt),
           metavar='LFMT', help='format all input lines with LFMT')
    for index, option in zip(FormatIndex, ('--unchanged-line-format', '--old-line-format',
                                           '--new-line-format')):
        _value(ifdef, option, apply=lambda b, fmt, index=index: b.set_line_format(index, fmt),
               metavar='LFMT', help=f'format {index.name.lower()} input lines with LFMT')

    # Directories and operands
    entities = parser.add_argument_group('directories and operands')
    _flag(entities, '-r', '--recursive', apply=_set_flag('recursive'),
          help='recursively compare any subdirectories found')
    _flag(entities, '--no-dereference', apply=_set_flag('no_dereference'),
          help="don't follow symbolic links")
    _flag(entities, '-N', '--new-file', apply=_set_flag('new_file'),
          help='treat absent files as empty')
    _flag(entities, '--unidirectional-new-file', apply=_set_flag('unidirectional_new_file'),
          help='treat absent first files as empty')
    _flag(entities, '--ignore-file-name-case', apply=_set_flag('ignore_file_name_case'),
          help='ignore case when comparing file names')
    _flag(entities, '--no-ignore-file-name-case', apply=_set_flag('ignore_file_name_case', False),
          help='consider case when comparing file names')
    _value(entities, '-x', '--exclude', apply=lambda b, pat: b.exclude_patterns.append(pat),
           metavar='PAT', help='exclude files that match PAT')
    _value(entities, '-X', '--exclude-from', apply=_exclude_from, metavar='FILE',
           help='exclude files that match any pattern in FILE')
    _value(entities, '-S', '--starting-file', apply=lambda b, f: b.set_once('starting_file', f, '-S'),
           metavar='FILE', help='start with FILE when comparing directories')
    _value(entities, '--from-file', apply=lambda b, f: b.set_once('from_file', f, '--from-file'),
           metavar='FILE1', help='compare FILE1 to all operands')
    _value(entities, '--to-file', apply=lambda b, f: b.set_once('to_file', f, '--to-file'),
           metavar='FILE2', help='compare all operands to FILE2')

    # Content
    content = parser.add_argument_group('content')
    _flag(content, '-i', '--ignore-case', apply=_set_flag('ignore_case'),
          help='ignore case differences in file contents')
    _flag(content, '-E', '--ignore-tab-expansion', apply=lambda b: b.ignore_tab_expansion(),
          help='ignore changes due to tab expansion')
    _flag(content, '-Z', '--ignore-trailing-space', apply=lambda b: b.ignore_trailing_space(),
          help='ignore white space at line end')
    _flag(content, '-b', '--ignore-space-change', apply=lambda b: b.ignore_space_change(),
          help='ignore changes in the amount of white space')
    _flag(content, '-w', '--ignore-all-space', apply=lambda b: b.ignore_all_space(),
          help='ignore all white space')
    _flag(content, '-B', '--ignore-blank-lines', apply=_set_flag('ignore_blank_lines'),
          help='ignore changes where lines are all blank')
    _value(content, '-I', '--ignore-matching-lines', apply=lambda b, p: b.ignore_matching_lines(p),
           metavar='RE', help='ignore changes where all lines match RE')
    _flag(content, '-a', '--text', apply=_set_flag('text'),
          help='treat all files as text')
    _flag(content, '--strip-trailing-cr', apply=_set_flag('strip_trailing_cr'),
          help='strip trailing carriage return on input')
    _flag(content, '--binary', apply=_set_flag('binary'),
          help='read and write data in binary mode')
    _flag(content, '-d', '--minimal', apply=_set_flag('minimal'),
          help='try hard to find a smaller set of changes')
    _value(content, '--horizon-lines',
           apply=lambda b, n: setattr(b, 'horizon_lines', max(b.horizon_lines, n)),
           type=horizon_value, metavar='NUM', help='keep NUM lines of the common prefix and suffix')
    _flag(content, '--speed-large-files', apply=_set_flag('speed_large_files'),
          help='assume large files and many scattered small changes')

    # Logging
    logs = parser.add_argument_group('logging')
    logs.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    logs.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='WARNING',
        help='Log level'
    )
    logs.add_argument(
        '--log-file',
        type=Path,
        help='Also write log records to this file'
    )

    # Version
    parser.add_argument(
        '-v', '--version',
        action='version',
        version=f'{APP_NAME} {APP_VERSION}'
    )

    return parser


def preprocess_arguments(args: List[str]) -> tuple[List[str], Optional[int]]:
    """
    Handle the forms argparse cannot express.

    ``-NUM`` sets the output context length (the last one wins), and
    ``--context=NUM`` / ``--unified=NUM`` become ``-C NUM`` / ``-U NUM``.
    Nothing after ``--`` is touched.

    Returns:
        The remaining arguments and the -NUM value, if any
    """
    result: List[str] = []
    output_context: Optional[int] = None
    for i, arg in enumerate(args):
        if arg == '--':
            result.extend(args[i:])
            break
        match = _NUMERIC_CONTEXT.match(arg)
        if match:
            output_context = min(int(match.group(1)), CONTEXT_MAX)
            continue
        if arg.startswith('--context='):
            result.extend(['-C', arg.split('=', 1)[1]])
        elif arg.startswith('--unified='):
            result.extend(['-U', arg.split('=', 1)[1]])
        else:
            result.append(arg)
    return result, output_context


def _long_option(parser: argparse.ArgumentParser, arg: str) -> Optional[argparse.Action]:
    """The action for a long option, allowing unambiguous abbreviations."""
    actions = parser._option_string_actions
    if arg in actions:
        return actions[arg]
    matches = {action for option, action in actions.items() if option.startswith(arg)}
    return matches.pop() if len(matches) == 1 else None


def option_tokens(parser: argparse.ArgumentParser, args: List[str]) -> List[str]:
    """
    The option tokens of ``args`` exactly as given, operands left out.

    These are repeated in the ``diff ...`` header printed before each
    file diff of a directory walk, so ``-rN`` stays ``-rN``.
    """
    tokens: List[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        i += 1
        if arg == '--':
            tokens.append(arg)
            break
        if not arg.startswith('-') or arg == '-':
            continue
        tokens.append(arg)
        if _NUMERIC_CONTEXT.match(arg):
            continue

        takes_next = False
        if arg.startswith('--'):
            if '=' not in arg:
                action = _long_option(parser, arg)
                takes_next = action is not None and action.nargs != 0
        else:
            # A short cluster: the first option with a value ends it.
            for pos in range(1, len(arg)):
                action = parser._option_string_actions.get('-' + arg[pos])
                if action is not None and action.nargs != 0:
                    takes_next = pos == len(arg) - 1
                    break
        if takes_next and i < len(args):
            tokens.append(args[i])
            i += 1
    return tokens


def parse_arguments(args: List[str]) -> tuple[argparse.Namespace, ComparisonConfig]:
    """
    Parse command line arguments into options and a finalized config.

    Raises:
        DiffError: for conflicting options or invalid patterns
        SystemExit: for argparse usage errors, --help and --version
    """
    raw_args = args
    args, output_context = preprocess_arguments(args)
    builder = ConfigBuilder()
    if output_context is not None:
        builder.set_output_context(output_context)

    parser = build_parser()
    parsed = parser.parse_intermixed_args(args, namespace=argparse.Namespace(builder=builder))
    builder.switches = tuple(option_tokens(parser, raw_args))

    builder.apply_defaults(SettingsManager().settings.as_dict())
    config = builder.finalize()
    return parsed, config


# =============================================================================
# Running
# =============================================================================

def operand_pairs(config: ComparisonConfig, operands: List[str], args: List[str]) -> List[tuple[str, str]]:
    """
    The top-level pairs to compare.

    Raises:
        UsageError: if there are not exactly two operands and neither
            --from-file nor --to-file was given
    """
    if config.from_file is not None:
        return [(config.from_file, operand) for operand in operands]
    if config.to_file is not None:
        return [(operand, config.to_file) for operand in operands]
    if len(operands) < 2:
        last = args[-1] if args else APP_NAME
        raise UsageError(f"missing operand after '{last}'")
    if len(operands) > 2:
        raise UsageError(f"extra operand '{operands[2]}'")
    return [(operands[0], operands[1])]


def run(config: ComparisonConfig, pairs: List[tuple[str, str]], reporter: Reporter) -> Verdict:
    """Compare every pair and return the worst verdict."""
    engine = ComparisonEngine(config, reporter, TextDiffEngine(config, reporter))
    verdict = Verdict.SUCCESS
    for name0, name1 in pairs:
        verdict = Verdict.worst(verdict, engine.compare_files(name0, name1))
    reporter.flush()
    return verdict


# =============================================================================
# Main Function
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Command line entry point.

    Returns:
        Exit code: 0 if inputs are the same, 1 if different, 2 if trouble
    """
    args = list(sys.argv[1:] if argv is None else argv)

    try:
        parsed, config = parse_arguments(args)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else EXIT_TROUBLE
    except DiffError as e:
        sys.stderr.write(f"{APP_NAME}: {e}\n")
        return EXIT_TROUBLE

    log_level = 'DEBUG' if parsed.debug else parsed.log_level
    setup_logging(log_level, parsed.log_file)
    logging.debug(f"main - Starting {APP_NAME} v{APP_VERSION} with {args}")

    reporter = Reporter(program_name=APP_NAME)
    try:
        pairs = operand_pairs(config, parsed.files, args)
        verdict = run(config, pairs, reporter)
    except UsageError as e:
        sys.stderr.write(f"{APP_NAME}: {e}\n{APP_NAME}: Try '{APP_NAME} --help' for more information.\n")
        return EXIT_TROUBLE
    except DiffError as e:
        reporter.diagnostic(str(e))
        return EXIT_TROUBLE
    except OSError as e:
        # Resolution failures never get here; this is standard output failing.
        logging.debug(f"main - Output failed: {e!r}")
        sys.stderr.write(f"{APP_NAME}: standard output: {e.strerror or e}\n")
        return EXIT_TROUBLE

    logging.debug(f"main - Exiting with status {int(verdict)}")
    return int(verdict)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == '__main__':
    sys.exit(main())
