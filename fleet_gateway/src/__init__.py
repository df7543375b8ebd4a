"""Fleet Gateway server."""
