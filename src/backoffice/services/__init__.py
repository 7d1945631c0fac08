"""Service layer: orchestration of multi-entity writes over the Store."""
