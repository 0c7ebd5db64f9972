"""Domain modules for MindScribe."""
