#!/usr/bin/env python3
"""
Entry point for running xdeploy as a module with python3 -m xdeploy
"""

from .cli import main

if __name__ == "__main__":
    main()
