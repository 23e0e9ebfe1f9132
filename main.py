#!/usr/bin/env python3
"""
Entry point for running prefixcrawl from a source checkout.

Equivalent to the installed ``prefixcrawl`` console script.
"""

from __future__ import annotations

from prefixcrawl.cli import main

if __name__ == "__main__":
    main()
