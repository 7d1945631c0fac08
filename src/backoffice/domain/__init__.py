"""Domain layer: pure models, normalization, and validation rules (no I/O)."""
