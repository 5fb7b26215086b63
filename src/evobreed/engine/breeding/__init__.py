"""Breeding graph: sources, selection methods, pipelines and breeders."""
