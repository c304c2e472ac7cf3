"""Core configuration and logging for lazycache."""
