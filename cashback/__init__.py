"""Cashback receipt reconciliation backend."""
