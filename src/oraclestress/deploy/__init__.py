"""Oracle deployment, config rendering, and service restarts."""
