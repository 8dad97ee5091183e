"""Optimistic task-board sync engine."""
