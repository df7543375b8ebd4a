"""Tesla Fleet API gateway with OAuth login and session-gated vehicle commands."""
