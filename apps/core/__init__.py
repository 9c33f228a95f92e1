"""
Core infrastructure shared by all apps: base model, errors, caching,
rate limiting, logging and health endpoints.
"""
