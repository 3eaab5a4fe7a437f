"""
Services
========
Business logic for the AssetLogix backend. Every service works on an async
SQLAlchemy session and can share the caller's transaction.
"""
