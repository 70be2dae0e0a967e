"""Session orchestration and durable result output."""
