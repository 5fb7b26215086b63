"""Generational driver, component registries, breeding and evaluation."""
