"""Check session controller, worker, events and message history."""
