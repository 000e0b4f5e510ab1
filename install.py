#!/usr/bin/env python3
"""
Auto-Skills - Installer
Installs the configuration bundle that sits next to this script into the
assistant's target root (default: $CLAUDE_CONFIG_DIR or ~/.claude).

Usage:
  python3 install.py                  # install this bundle
  python3 install.py update           # pull the checkout and re-place
  python3 install.py uninstall        # remove what was installed

Any arguments are passed through to `autoskills`; without a subcommand the
script installs from its own directory.
"""

from __future__ import annotations

from pathlib import Path
import sys

SCRIPT_DIR = Path(__file__).resolve().parent
SUBCOMMANDS = ("install", "update", "uninstall")


def build_argv(argv: list[str]) -> list[str]:
    if not argv or argv[0] not in SUBCOMMANDS + ("-h", "--help", "--version"):
        argv = ["install", *argv]
    if argv[0] == "install" and not any(a == "--source-dir" or a.startswith("--source-dir=") for a in argv):
        argv = [*argv, "--source-dir", str(SCRIPT_DIR)]
    return argv


if __name__ == "__main__":
    sys.path.insert(0, str(SCRIPT_DIR))
    from autoskills.cli import main

    raise SystemExit(main(build_argv(sys.argv[1:])))
