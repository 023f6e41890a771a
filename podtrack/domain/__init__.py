"""Domain layer: entities, error taxonomy and collaborator interfaces."""
