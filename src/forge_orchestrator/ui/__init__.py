"""Command-line surface: argparse router and rich-backed renderer."""
