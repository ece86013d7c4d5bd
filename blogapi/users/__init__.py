"""User administration endpoints, backed by AuthService."""
