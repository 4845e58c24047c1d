"""CLI for lakedash."""
