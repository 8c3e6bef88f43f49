"""
Shared helpers: title sanitizing and URL parsing, formatting, structured logging.
"""
