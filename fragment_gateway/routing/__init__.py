"""Fragment route table, path shapes and per-fragment bootstrap transforms."""
