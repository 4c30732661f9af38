#!/usr/bin/env python3
"""
Main entry point for enject - Keep secrets out of .env files
"""

# Verbosity flags are parsed/configured inside core.main.
# This CLI wrapper is responsible for exit codes.
import sys
from .core import main as enject_main
from .exceptions import EnjectError


def main() -> None:
    """Main entry point for enject."""
    try:
        code = enject_main()
    except EnjectError:
        # Known failure modes: already logged, exit with 1 (single nonzero code policy)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
