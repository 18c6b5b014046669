"""Infrastructure layer: persistence of record rule definitions."""
