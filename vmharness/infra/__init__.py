"""Process and HTTP plumbing shared by providers and diagnostics."""
