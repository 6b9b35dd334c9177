# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Centralized terminal formatting utilities for kitwe."""

import os
import re

from colorama import Fore, Style, init

# autoreset=True means colors reset after each print
init(autoreset=True)


class TerminalColors:
    """Centralized color scheme for consistent terminal output.

    Semantic color mappings for run status, progress phases and the result
    report. Every method returns plain text when NO_COLOR is set.
    """

    # Semantic color mapping for different message types
    ERROR = Fore.RED
    WARNING = Fore.YELLOW
    SUCCESS = Fore.GREEN
    INFO = Fore.CYAN
    HIGHLIGHT = Fore.MAGENTA
    PHASE = Fore.BLUE
    RESET = Style.RESET_ALL

    # Semantic styles
    BOLD = Style.BRIGHT
    DIM = Style.DIM

    # Check if colors should be disabled (for CI/CD environments)
    NO_COLOR = os.environ.get("NO_COLOR") is not None

    # Regex pattern to match ANSI escape sequences
    ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

    @classmethod
    def strip_ansi(cls, text: str) -> str:
        """Remove all ANSI escape sequences from text.

        Args:
            text: Text potentially containing ANSI color codes

        Returns:
            Clean text without any ANSI escape sequences
        """
        return cls.ANSI_ESCAPE_PATTERN.sub("", text)

    @classmethod
    def _wrap(cls, color: str, text: str) -> str:
        if cls.NO_COLOR:
            return text
        return f"{color}{text}{cls.RESET}"

    @classmethod
    def error(cls, text: str) -> str:
        """Format error text in red."""
        return cls._wrap(cls.ERROR, text)

    @classmethod
    def warning(cls, text: str) -> str:
        """Format warning text in yellow."""
        return cls._wrap(cls.WARNING, text)

    @classmethod
    def success(cls, text: str) -> str:
        """Format success text in green."""
        return cls._wrap(cls.SUCCESS, text)

    @classmethod
    def info(cls, text: str) -> str:
        """Format info text in cyan."""
        return cls._wrap(cls.INFO, text)

    @classmethod
    def dim(cls, text: str) -> str:
        """Format secondary text (command lines, output excerpts)."""
        return cls._wrap(cls.DIM, text)

    @classmethod
    def bold(cls, text: str) -> str:
        """Format text in bold."""
        return cls._wrap(cls.BOLD, text)

    @classmethod
    def progress_step(cls, phase: str, detail: str) -> str:
        """Format one progress line as ``[phase] detail``.

        Args:
            phase: Progress phase tag, e.g. ``resolve`` or ``execute``
            detail: Free-text detail for the phase

        Returns:
            Progress line with the phase tag colored by phase
        """
        phase_colors = {
            "resolve": cls.PHASE,
            "setup": cls.WARNING,
            "pre_command": cls.WARNING,
            "execute": cls.INFO,
            "collect": cls.HIGHLIGHT,
            "complete": cls.SUCCESS,
            "error": cls.ERROR,
        }
        color = phase_colors.get(phase, cls.RESET)
        return f"{cls._wrap(color, f'[{phase}]')} {detail}"
