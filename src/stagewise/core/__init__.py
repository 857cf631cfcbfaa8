"""Core building blocks: errors, generation providers and research workflows."""
