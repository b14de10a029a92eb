"""
Comparison policy: a conflict-checking builder and the frozen result.

The command-line layer feeds every option into a ConfigBuilder. Settings
that take a value are single-assignment: the first request wins, an
identical repeat is a no-op, and a different repeat is a ConfigConflictError.
ConfigBuilder.finalize() derives the secondary values (effective context,
side-by-side columns, output policies) and returns an immutable
ComparisonConfig that the engine reads and never writes.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto
from typing import Any, Optional

from pairdiff.core.errors import ConfigConflictError
from pairdiff.core.regexp_list import RegexpAccumulator


GUTTER_WIDTH_MINIMUM = 3
CONTEXT_MAX = 2 ** 31 - 1
DEFAULT_TABSIZE = 8
DEFAULT_WIDTH = 130
DEFAULT_CONTEXT = 3

# Pattern added by -p / --show-c-function.
C_FUNCTION_REGEXP = r"^[A-Za-z$_]"


# =============================================================================
# Enumerations
# =============================================================================

class OutputStyle(Enum):
    """How differences are printed."""
    NORMAL = auto()
    CONTEXT = auto()
    UNIFIED = auto()
    ED = auto()
    FORWARD_ED = auto()
    RCS = auto()
    IFDEF = auto()
    SDIFF = auto()


class WhitespaceMode(IntEnum):
    """
    Whitespace-ignore levels, ordered by strength.

    TAB_EXPANSION and TRAILING_SPACE are sub-flags that may combine while the
    mode is below SPACE_CHANGE.
    """
    NONE = 0
    TAB_EXPANSION = 1
    TRAILING_SPACE = 2
    TAB_EXPANSION_AND_TRAILING_SPACE = 3
    SPACE_CHANGE = 4
    ALL_SPACE = 5


class FormatIndex(IntEnum):
    """Slots of the ifdef group and line formats."""
    UNCHANGED = 0
    OLD = 1
    NEW = 2
    CHANGED = 3


GROUP_FORMAT_OPTIONS = (
    "--unchanged-group-format",
    "--old-group-format",
    "--new-group-format",
    "--changed-group-format",
)

LINE_FORMAT_OPTIONS = (
    "--unchanged-line-format",
    "--old-line-format",
    "--new-line-format",
)


def ifdef_group_formats(name: str) -> tuple[str, str, str, str]:
    """Group formats implied by -D NAME (unchanged, old, new, changed)."""
    return (
        "%=",
        f"#ifndef {name}\n%<#endif /* ! {name} */\n",
        f"#ifdef {name}\n%>#endif /* {name} */\n",
        f"#ifndef {name}\n%<#else /* {name} */\n%>#endif /* {name} */\n",
    )


def side_by_side_columns(width: int, tabsize: int, expand_tabs: bool) -> tuple[int, int]:
    """
    Compute (half_width, column2_offset) for side-by-side output.

    Maximizes first the half line width and then the gutter, subject to:
    two half lines plus a gutter fit in ``width``; the gutter is at least
    GUTTER_WIDTH_MINIMUM; without tab expansion a half line plus its gutter
    is a whole number of tab stops so tabs in the right column line up.
    """
    t = 1 if expand_tabs else tabsize
    w = width
    t_plus_g = t + GUTTER_WIDTH_MINIMUM
    unaligned_off = (w >> 1) + (t_plus_g >> 1) + (w & t_plus_g & 1)
    off = unaligned_off - unaligned_off % t
    if off <= GUTTER_WIDTH_MINIMUM or w <= off:
        half_width = 0
    else:
        half_width = min(off - GUTTER_WIDTH_MINIMUM, w - off)
    column2_offset = off if half_width else w
    return half_width, column2_offset


# =============================================================================
# Frozen configuration
# =============================================================================

@dataclass(frozen=True)
class ComparisonConfig:
    """Effective comparison policy for a run. Read-only."""
    output_style: OutputStyle = OutputStyle.NORMAL
    context: int = 0
    horizon_lines: int = 0
    width: int = DEFAULT_WIDTH
    tabsize: int = DEFAULT_TABSIZE
    sdiff_half_width: int = 0
    sdiff_column2_offset: int = 0
    labels: tuple[Optional[str], Optional[str]] = (None, None)

    # Content policy, passed through to the content-diff primitive
    whitespace: WhitespaceMode = WhitespaceMode.NONE
    ignore_case: bool = False
    ignore_blank_lines: bool = False
    strip_trailing_cr: bool = False
    text: bool = False
    ignore_regexps: RegexpAccumulator = field(default_factory=RegexpAccumulator)
    function_regexps: RegexpAccumulator = field(default_factory=RegexpAccumulator)

    # Output details
    brief: bool = False
    expand_tabs: bool = False
    initial_tab: bool = False
    left_column: bool = False
    suppress_common_lines: bool = False
    suppress_blank_empty: bool = False
    minimal: bool = False
    speed_large_files: bool = False
    group_formats: tuple[str, str, str, str] = ("", "", "", "")
    line_formats: tuple[str, str, str] = ("", "", "")

    # Entity handling
    binary: bool = True
    no_dereference: bool = False
    recursive: bool = False
    new_file: bool = False
    unidirectional_new_file: bool = False
    report_identical_files: bool = False
    ignore_file_name_case: bool = False
    exclude_patterns: tuple[str, ...] = ()
    starting_file: Optional[str] = None
    from_file: Optional[str] = None
    to_file: Optional[str] = None

    # Derived policies
    no_diff_means_no_output: bool = True
    files_can_be_treated_as_binary: bool = False

    # Options as given, for "diff ..." headers in directory walks
    switches: tuple[str, ...] = ()

    @property
    def has_content_ignore_policy(self) -> bool:
        return bool(
            self.ignore_blank_lines
            or self.ignore_case
            or self.strip_trailing_cr
            or self.ignore_regexps
            or self.whitespace != WhitespaceMode.NONE
        )


# =============================================================================
# Builder
# =============================================================================

class ConfigBuilder:
    """
    Collects options and produces a ComparisonConfig.

    Every setter is safe to call repeatedly with the same value. Single-valued
    settings raise ConfigConflictError when asked to change.
    """

    def __init__(self):
        self.output_style: Optional[OutputStyle] = None
        self.context = 0
        self.output_context = -1
        self.explicit_context = False
        self.horizon_lines = 0
        self.width: Optional[int] = None
        self.tabsize: Optional[int] = None
        self.labels: list[Optional[str]] = [None, None]
        self.starting_file: Optional[str] = None
        self.from_file: Optional[str] = None
        self.to_file: Optional[str] = None
        self.group_formats: list[Optional[str]] = [None, None, None, None]
        self.line_formats: list[Optional[str]] = [None, None, None]

        self.whitespace = WhitespaceMode.NONE
        self.ignore_case = False
        self.ignore_blank_lines = False
        self.strip_trailing_cr = False
        self.text = False
        self.brief = False
        self.expand_tabs = False
        self.initial_tab = False
        self.left_column = False
        self.suppress_common_lines = False
        self.suppress_blank_empty = False
        self.minimal = False
        self.speed_large_files = False
        self.show_c_function = False
        self.binary = os.name != 'nt'
        self.no_dereference = False
        self.recursive = False
        self.new_file = False
        self.unidirectional_new_file = False
        self.report_identical_files = False
        self.ignore_file_name_case: Optional[bool] = None
        self.exclude_patterns: list[str] = []
        self.switches: tuple[str, ...] = ()

        self.function_regexps = RegexpAccumulator("function")
        self.ignore_regexps = RegexpAccumulator("ignore")

    # -------------------------------------------------------------------------
    # Single-assignment settings
    # -------------------------------------------------------------------------

    def set_style(self, style: OutputStyle) -> None:
        """Set the output style; a different style already set is a conflict."""
        if self.output_style != style:
            if self.output_style is not None:
                raise ConfigConflictError(
                    "output style", style,
                    message="conflicting output style options"
                )
            self.output_style = style

    def set_once(self, name: str, value: Any, option: str) -> None:
        """
        Assign ``value`` to the setting ``name`` unless it already differs.

        ``name`` may address a list slot as ``"group_formats[2]"``.

        Raises:
            ConfigConflictError: if the setting holds a different value
        """
        container, key = self._locate(name)
        current = container[key] if isinstance(key, int) else getattr(container, key)
        if current is not None and current != value:
            raise ConfigConflictError(option, value)
        if isinstance(key, int):
            container[key] = value
        else:
            setattr(container, key, value)

    def add_label(self, label: str) -> None:
        """Fill the next free label slot, left to right."""
        if self.labels[0] is None:
            self.labels[0] = label
        elif self.labels[1] is None:
            self.labels[1] = label
        else:
            raise ConfigConflictError(
                "--label", label, message="too many file label options"
            )

    def _locate(self, name: str) -> tuple[Any, Any]:
        if name.endswith("]") and "[" in name:
            attr, index = name[:-1].split("[", 1)
            return getattr(self, attr), int(index)
        if not hasattr(self, name):
            raise AttributeError(f"unknown setting {name!r}")
        return self, name

    # -------------------------------------------------------------------------
    # Style-specific helpers
    # -------------------------------------------------------------------------

    def request_context(self, style: OutputStyle, lines: Optional[int]) -> None:
        """-c/-u (lines=None), or an explicit count from -C, -U and the long forms."""
        self.set_style(style)
        if lines is None:
            self.context = max(self.context, DEFAULT_CONTEXT)
        else:
            self.context = max(self.context, min(lines, CONTEXT_MAX))
            self.explicit_context = True

    def set_output_context(self, lines: int) -> None:
        """The -NUM shorthand."""
        self.output_context = min(lines, CONTEXT_MAX)

    def set_width(self, width: int) -> None:
        self.set_once("width", width, "--width")

    def set_tabsize(self, tabsize: int) -> None:
        self.set_once("tabsize", tabsize, "--tabsize")

    def define_ifdef(self, name: str) -> None:
        self.set_style(OutputStyle.IFDEF)
        for index, value in enumerate(ifdef_group_formats(name)):
            self.set_once(f"group_formats[{index}]", value, "-D")

    def set_group_format(self, index: FormatIndex, value: str) -> None:
        self.set_style(OutputStyle.IFDEF)
        self.set_once(f"group_formats[{int(index)}]", value, GROUP_FORMAT_OPTIONS[index])

    def set_line_format(self, index: Optional[FormatIndex], value: str) -> None:
        """index=None is --line-format, which sets all three line formats."""
        self.set_style(OutputStyle.IFDEF)
        if index is None:
            for i in range(len(self.line_formats)):
                self.set_once(f"line_formats[{i}]", value, "--line-format")
        else:
            self.set_once(f"line_formats[{int(index)}]", value, LINE_FORMAT_OPTIONS[index])

    def show_function_line(self, pattern: str) -> None:
        self.function_regexps.register(pattern)

    def show_c_function_lines(self) -> None:
        self.show_c_function = True
        self.function_regexps.register(C_FUNCTION_REGEXP)

    def ignore_matching_lines(self, pattern: str) -> None:
        self.ignore_regexps.register(pattern)

    # -------------------------------------------------------------------------
    # Whitespace escalation
    # -------------------------------------------------------------------------

    def ignore_all_space(self) -> None:
        self.whitespace = WhitespaceMode.ALL_SPACE

    def ignore_space_change(self) -> None:
        if self.whitespace < WhitespaceMode.SPACE_CHANGE:
            self.whitespace = WhitespaceMode.SPACE_CHANGE

    def ignore_tab_expansion(self) -> None:
        if self.whitespace < WhitespaceMode.SPACE_CHANGE:
            self.whitespace = WhitespaceMode(self.whitespace | WhitespaceMode.TAB_EXPANSION)

    def ignore_trailing_space(self) -> None:
        if self.whitespace < WhitespaceMode.SPACE_CHANGE:
            self.whitespace = WhitespaceMode(self.whitespace | WhitespaceMode.TRAILING_SPACE)

    # -------------------------------------------------------------------------
    # Defaults from the settings file
    # -------------------------------------------------------------------------

    def apply_defaults(self, defaults: dict[str, Any]) -> None:
        """
        Fill settings the command line left unset.

        Never overrides an explicit option, so it cannot cause a conflict.
        """
        if self.width is None and defaults.get('width'):
            self.width = int(defaults['width'])
        if self.tabsize is None and defaults.get('tabsize'):
            self.tabsize = int(defaults['tabsize'])
        if (defaults.get('context') is not None
                and self.output_context < 0
                and not self.explicit_context):
            self.output_context = min(int(defaults['context']), CONTEXT_MAX)
        for pattern in defaults.get('exclude_patterns', []):
            if pattern not in self.exclude_patterns:
                self.exclude_patterns.append(pattern)
        if self.ignore_file_name_case is None:
            self.ignore_file_name_case = bool(defaults.get('ignore_file_name_case'))

    # -------------------------------------------------------------------------
    # Finalization
    # -------------------------------------------------------------------------

    def finalize(self) -> ComparisonConfig:
        """Derive secondary values and freeze the configuration."""
        if self.from_file is not None and self.to_file is not None:
            raise ConfigConflictError(
                "--from-file", self.from_file,
                message="--from-file and --to-file both specified"
            )

        context = self.context
        if self.output_style is None:
            if self.show_c_function:
                self.set_style(OutputStyle.CONTEXT)
                if self.output_context < 0:
                    context = DEFAULT_CONTEXT
            else:
                self.set_style(OutputStyle.NORMAL)
        style = self.output_style

        ocontext = self.output_context
        if (0 <= ocontext
                and style in (OutputStyle.CONTEXT, OutputStyle.UNIFIED)
                and (context < ocontext
                     or (ocontext < context and not self.explicit_context))):
            context = ocontext

        tabsize = self.tabsize or DEFAULT_TABSIZE
        width = self.width or DEFAULT_WIDTH
        half_width, column2_offset = side_by_side_columns(width, tabsize, self.expand_tabs)

        horizon_lines = max(self.horizon_lines, context)

        self.function_regexps.finalize()
        self.ignore_regexps.finalize()

        group_formats, line_formats = self._resolve_formats(style)

        if style == OutputStyle.IFDEF:
            unchanged = group_formats[FormatIndex.UNCHANGED]
            no_diff_means_no_output = (
                not unchanged
                or (unchanged == "%=" and not line_formats[FormatIndex.UNCHANGED])
            )
        else:
            no_diff_means_no_output = style != OutputStyle.SDIFF or self.suppress_common_lines

        files_can_be_treated_as_binary = (
            self.brief
            and self.binary
            and not (
                self.ignore_blank_lines
                or self.ignore_case
                or self.strip_trailing_cr
                or bool(self.ignore_regexps)
                or self.whitespace != WhitespaceMode.NONE
            )
        )

        config = ComparisonConfig(
            output_style=style,
            context=context,
            horizon_lines=horizon_lines,
            width=width,
            tabsize=tabsize,
            sdiff_half_width=half_width,
            sdiff_column2_offset=column2_offset,
            labels=(self.labels[0], self.labels[1]),
            whitespace=self.whitespace,
            ignore_case=self.ignore_case,
            ignore_blank_lines=self.ignore_blank_lines,
            strip_trailing_cr=self.strip_trailing_cr,
            text=self.text,
            ignore_regexps=self.ignore_regexps,
            function_regexps=self.function_regexps,
            brief=self.brief,
            expand_tabs=self.expand_tabs,
            initial_tab=self.initial_tab,
            left_column=self.left_column,
            suppress_common_lines=self.suppress_common_lines,
            suppress_blank_empty=self.suppress_blank_empty,
            minimal=self.minimal,
            speed_large_files=self.speed_large_files,
            group_formats=group_formats,
            line_formats=line_formats,
            binary=self.binary,
            no_dereference=self.no_dereference,
            recursive=self.recursive,
            new_file=self.new_file,
            unidirectional_new_file=self.unidirectional_new_file,
            report_identical_files=self.report_identical_files,
            ignore_file_name_case=bool(self.ignore_file_name_case),
            exclude_patterns=tuple(self.exclude_patterns),
            starting_file=self.starting_file,
            from_file=self.from_file,
            to_file=self.to_file,
            no_diff_means_no_output=no_diff_means_no_output,
            files_can_be_treated_as_binary=files_can_be_treated_as_binary,
            switches=self.switches,
        )
        logging.debug(
            f"ConfigBuilder - style={style.name} context={context} width={width} "
            f"tabsize={tabsize} binary_fast_path={files_can_be_treated_as_binary}"
        )
        return config

    def _resolve_formats(
        self,
        style: OutputStyle
    ) -> tuple[tuple[str, str, str, str], tuple[str, str, str]]:
        """Fill in the ifdef formats that were not given explicitly."""
        if style != OutputStyle.IFDEF:
            return ("", "", "", ""), ("", "", "")

        line_formats = tuple(f if f is not None else "%l\n" for f in self.line_formats)

        groups = list(self.group_formats)
        changed = groups[FormatIndex.CHANGED]
        if groups[FormatIndex.OLD] is None:
            groups[FormatIndex.OLD] = changed if changed is not None else "%<"
        if groups[FormatIndex.NEW] is None:
            groups[FormatIndex.NEW] = changed if changed is not None else "%>"
        if groups[FormatIndex.UNCHANGED] is None:
            groups[FormatIndex.UNCHANGED] = "%="
        if changed is None:
            groups[FormatIndex.CHANGED] = groups[FormatIndex.OLD] + groups[FormatIndex.NEW]
        return tuple(groups), line_formats
