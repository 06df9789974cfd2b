"""Table-backed, per-year number sequences (INV-25-00001)."""
