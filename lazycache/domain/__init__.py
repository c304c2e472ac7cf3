"""Domain layer for lazycache."""
