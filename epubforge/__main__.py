"""Module entrypoint for running epubforge as ``python -m epubforge``."""

from __future__ import annotations

from epubforge.cli import main


if __name__ == "__main__":
    main()
