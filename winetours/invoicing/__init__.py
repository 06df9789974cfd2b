"""Deposit and final invoices."""
