"""stitch CLI bootstrap."""

from __future__ import annotations

from stitch.cli import app

if __name__ == "__main__":
    app()
