"""Command implementations for the minipm CLI."""
