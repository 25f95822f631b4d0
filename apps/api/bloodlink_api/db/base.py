"""Declarative bases.

The record store and the local ledger engine use separate metadata so they
can live in separate databases and fail independently.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

LedgerBase = declarative_base()
