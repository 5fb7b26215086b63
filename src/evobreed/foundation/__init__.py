"""Run-independent infrastructure: errors, parameters, registries, random streams."""
