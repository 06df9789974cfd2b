"""Driver time clock."""
