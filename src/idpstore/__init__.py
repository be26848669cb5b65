"""
idpstore - Service Provider configuration store for an identity provider.

Persists Service Provider records, attribute mappings and key pairs on top of
SQLAlchemy, with versioned, idempotent schema migrations.
"""

__version__ = "0.1.0"
