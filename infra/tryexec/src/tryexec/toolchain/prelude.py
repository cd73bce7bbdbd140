"""
Names injected into the globals of every run.

This module is loaded by the execution host from its file path, so it must
only depend on the standard library.  The completion resolver reads the same
definitions, which keeps suggestions in line with what a run can use.
"""

import sys


class Console:
    """Console helpers for writing to and reading from the program's streams."""

    @staticmethod
    def WriteLine(value: object = "") -> None:
        """Write ``value`` followed by a line terminator to standard output."""
        print(value)

    @staticmethod
    def Write(value: object = "") -> None:
        """Write ``value`` to standard output without a line terminator."""
        print(value, end="")

    @staticmethod
    def ReadLine() -> str:
        """Read the next line from standard input, without its terminator."""
        return sys.stdin.readline().rstrip("\n")


PRELUDE = {"Console": Console}
