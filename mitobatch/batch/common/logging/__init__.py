"""Run-level logging helpers."""
