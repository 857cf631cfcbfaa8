"""Command line interface for stagewise."""
