"""Utilities package for the Farm Ledger application."""
