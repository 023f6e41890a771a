"""podtrack - social metrics enrichment for podcasts."""
