"""Service layer for lazycache."""
