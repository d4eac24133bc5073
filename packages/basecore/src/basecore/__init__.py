"""
basecore

Shared infrastructure: settings, logging, database sessions, Redis and storage.
"""
