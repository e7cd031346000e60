"""Adaptive study scheduling: behavior learning, mode selection, and backlog redistribution."""
