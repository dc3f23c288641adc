"""Services module: integrations and multi-step business operations."""
