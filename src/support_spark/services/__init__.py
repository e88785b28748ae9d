"""Core services: credentials, sessions, rate limiting, relationships, conversations and demo mode."""
