"""SQLAlchemy persistence for podcasts, jobs, metrics and costs."""
