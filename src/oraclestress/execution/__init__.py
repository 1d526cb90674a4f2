"""Execution primitives: typed results, retries, limiter, run coordination."""
