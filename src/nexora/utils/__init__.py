"""Shared utilities: LLM client, retries, parsing and validation."""
