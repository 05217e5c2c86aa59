"""
Services package - business logic layer for Farm Ledger.

This package contains the ledger store plumbing, the consistency operations
that keep batch populations, inventory stock and the expense ledger in step,
the offline outbox and the reporting aggregator.

Import service modules directly, e.g.:
    from farm_ledger.services import sale_service
"""
