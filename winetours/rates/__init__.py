"""Versioned rate tables and the pure rate engine."""
