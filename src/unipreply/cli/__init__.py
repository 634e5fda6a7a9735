"""
CLI Module - Command-line interface for UniPreply Advisor.
==========================================================

Usage:
    unipreply --help
    unipreply serve
    unipreply ask "Compare Yale vs Brown tuition"
    unipreply compare Yale Brown
    unipreply scholarships Brown -t first-year

Components:
- main: Typer CLI application
"""

from unipreply.cli.main import app, cli

__all__ = ["app", "cli"]
