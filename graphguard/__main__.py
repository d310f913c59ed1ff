"""Main entry point when executing graphguard as a package.

This allows running the package using python -m graphguard.
"""

from graphguard.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
