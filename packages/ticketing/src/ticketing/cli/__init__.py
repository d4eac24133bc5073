"""Ticketing command-line tools."""
