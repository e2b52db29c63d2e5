"""
Services module.

Business logic for bet resolution, parlay building, settlement and the
streak ledger. Services take a SQLAlchemy session and go through the
repositories for all data access.
"""
