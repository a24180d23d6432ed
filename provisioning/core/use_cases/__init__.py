"""Use cases — what the CLI commands do, without the printing."""
