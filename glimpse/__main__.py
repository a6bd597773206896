"""
Entry point for running Glimpse as a module.

Usage:
    python -m glimpse stats
    python -m glimpse --help
"""

from glimpse.app.cli import main

if __name__ == "__main__":
    main()
