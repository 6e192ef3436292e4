"""Kernel services shared by the asset modules."""
