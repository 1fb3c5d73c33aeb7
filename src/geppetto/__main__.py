"""Geppetto CLI entry point."""

from geppetto.cli import app

if __name__ == "__main__":
    app()
