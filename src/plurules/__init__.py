"""plurules: zoning ruleset resolution and override engine."""
