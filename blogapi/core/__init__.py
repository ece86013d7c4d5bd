"""Core infrastructure: context, logging, middleware, errors, persistence."""
