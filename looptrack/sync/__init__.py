"""Delta sync: change processing, conflict strategies and per-owner locking."""
