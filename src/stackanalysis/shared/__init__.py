"""Shared kernel — exceptions used across every layer."""
