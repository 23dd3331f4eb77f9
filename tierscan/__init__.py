"""XRP Ledger wealth distribution scanner and tier classifier."""

__version__ = "1.0.0"
