"""Task board client core: entity cache, assignment reconciliation and push merge."""
