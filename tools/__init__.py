"""External collaborators: identity, AI services and observability."""
