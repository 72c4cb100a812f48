"""Command-line entrypoint: builds collage sheets via collage_sheets.main.

Run ``python main.py --help`` for the available options; the installed
``collage-sheets`` script is equivalent.
"""

import sys

try:
    from collage_sheets.main import main
except Exception as exc:
    # Provide a clear error if imports fail due to PYTHONPATH issues
    raise RuntimeError("Failed to import collage_sheets. Ensure project root is on PYTHONPATH.") from exc


if __name__ == "__main__":
    sys.exit(main())
