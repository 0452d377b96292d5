"""Protocol definitions bundled with porch (lowest-precedence search location)."""
