"""Settings, logging, shared types and the exception hierarchy."""
