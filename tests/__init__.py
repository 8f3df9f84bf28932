"""Family health privacy governance test suite."""
