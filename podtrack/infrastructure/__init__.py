"""Infrastructure layer: upstream connectors, providers, persistence and CLI."""
