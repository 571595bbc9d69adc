#!/usr/bin/env python3
"""Print the TypeSpec source carried by a playground share link."""

from __future__ import annotations

import sys

from backlog_triage.links import decode_share_link


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: decode_link.py <playground-url>", file=sys.stderr)
        sys.exit(1)
    try:
        print(decode_share_link(sys.argv[1]))
    except ValueError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
