"""Court grid test suite."""
