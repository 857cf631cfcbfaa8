"""Deep research engine: session models, search providers and workflows."""
