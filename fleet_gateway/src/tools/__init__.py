"""Gateway command modules."""
