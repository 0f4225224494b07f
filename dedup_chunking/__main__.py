#!/usr/bin/env python3
"""
Entry point for running dedup_chunking as a module.

This allows the package to be run with:
    python -m dedup_chunking
"""

from dedup_chunking.cli import main

if __name__ == "__main__":
    main()
