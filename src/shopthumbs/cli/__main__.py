"""CLI entry point for shopthumbs.cli module.

Enables execution via: python -m shopthumbs.cli (runs the image worker)
"""

from shopthumbs.cli.run_worker import main

if __name__ == "__main__":
    raise SystemExit(main())
