"""
Entry point for running the API CLI as a module.

Usage:
    python -m loyalty_api
"""

from loyalty_api.cli import main

if __name__ == "__main__":
    main()
