"""
SQLAlchemy ORM models package.

All models are imported here so that Base.metadata knows about every table
before create_all() runs at startup.
"""

from cardvault.models.card import Card  # noqa: F401
