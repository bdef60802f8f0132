"""Functionality shared by the batch components."""
