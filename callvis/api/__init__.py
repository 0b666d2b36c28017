"""HTTP surface of the control service."""
