"""Call graph model, filtering and grouping."""
