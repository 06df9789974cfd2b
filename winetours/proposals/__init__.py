"""Proposal and acceptance workflow."""
