"""Evaluators: simple, NSGA-II archiving and coevolution."""
