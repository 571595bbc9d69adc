#!/usr/bin/env python3
"""Verify a TypeSpec repro by compiling it in a throwaway project.

Usage:
    python scripts/verify_repro.py <tsp-file-or-code> [--emitter <emitter-name>] [--config <yaml>]

If the first argument names an existing file it is read, otherwise it is
treated as inline code. Prints one JSON document to stdout:
{"success": bool, "diagnostics": str, "exitCode": int, "emitterOutput": {...} | null}
"""

from __future__ import annotations

import argparse

from backlog_triage.config import TriageConfig, load_config
from backlog_triage.verification import SandboxBuilder


def main() -> None:
    parser = argparse.ArgumentParser(description="Compile a repro snippet in a sandbox")
    parser.add_argument("source", help="Path to a .tsp file, or inline TypeSpec code")
    parser.add_argument("--emitter", help="Emitter package to install and run")
    parser.add_argument("--config", help="Path to triage YAML config")
    args = parser.parse_args()

    if not args.source:
        parser.error("source must not be empty")

    config = load_config(args.config) if args.config else TriageConfig()
    verdict = SandboxBuilder(config.sandbox).verify(args.source, emitter=args.emitter)
    print(verdict.to_json())


if __name__ == "__main__":
    main()
