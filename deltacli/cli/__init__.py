"""Delta CLI command-line interface."""
