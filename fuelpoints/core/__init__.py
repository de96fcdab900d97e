"""
Core infrastructure: configuration, logging, clock, event bus, database.
"""
