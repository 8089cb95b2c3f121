"""Ledger statistics package."""

from money_keeper.queries.statistics import LedgerStatistics

__all__ = ["LedgerStatistics"]
