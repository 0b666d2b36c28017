"""callvis — visualize the call graph of a program as clustered DOT output."""

__version__ = "0.7.0"
