"""Presentation layer — command line surface."""
