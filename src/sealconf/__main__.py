"""
Entry point for running sealconf as a module.

Usage:
    python -m sealconf [command] [options]
"""

from sealconf.cli import main

if __name__ == "__main__":
    main()
