"""Command-line interface: argparse router, replay scripts and plain-text rendering."""
