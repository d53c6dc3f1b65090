#!/usr/bin/env python3
"""Manual dispatch trigger script."""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from blogmail.main import app

if __name__ == "__main__":
    app(["send", *sys.argv[1:]])
