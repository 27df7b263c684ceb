"""Layers - Evaluation, notification and repair."""
