"""Domain layer: entities and services of the record rule engine."""
