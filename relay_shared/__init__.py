"""
Shared infrastructure for the color relay: configuration and logging.
"""
