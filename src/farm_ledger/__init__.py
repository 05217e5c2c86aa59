"""Farm Ledger: consistency engine for poultry-farm population, inventory and cash records."""

__version__ = "0.1.0"
