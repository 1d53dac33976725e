"""HTTP read API over the stored snapshots and history."""
