"""Service layer for tagnotes."""
