"""
Main entry point for the samfirm package.

Allows running the downloader as: python -m samfirm
"""

from samfirm.cli import main

if __name__ == "__main__":
    main()
