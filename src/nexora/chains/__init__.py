"""LLM prompt chains for each generation stage."""
