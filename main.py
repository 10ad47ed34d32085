#!/usr/bin/env python3
"""Stoppclock entry point.

Run with:
    python main.py [kind]
    python -m stoppclock [kind]
"""

from stoppclock.__main__ import main


if __name__ == "__main__":
    main()
