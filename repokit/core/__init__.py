"""
Core utilities: settings, logging, exceptions and retry helpers.
"""
