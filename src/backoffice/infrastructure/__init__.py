"""Infrastructure layer: SQLite store, CSV collaborator."""
