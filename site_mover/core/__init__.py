"""Core building blocks shared by the migration services."""
