"""Business rules that do not depend on HTTP: scoring, workflows, aggregation."""
