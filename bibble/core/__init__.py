"""Core conversation engine: agent loop, tool bridge and registries."""
