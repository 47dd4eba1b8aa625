"""Main entry point for orgai - send project files to an LLM and merge its answers back."""

import logging
import sys

from cli import run_cli

def main():
    """Main entry point."""
    try:
        sys.exit(run_cli())
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception:
        logging.exception("Error in orgai")
        sys.exit(1)

if __name__ == "__main__":
    main()
