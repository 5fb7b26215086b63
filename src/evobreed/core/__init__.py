"""Data model: fitness, individuals, populations, species and problem contracts."""
