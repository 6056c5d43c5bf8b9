"""Directory lookups and searches."""
