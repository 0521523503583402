"""Clinical gateway test suite."""
