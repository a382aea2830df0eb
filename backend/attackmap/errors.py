# backend/attackmap/errors.py

class AttackMapError(Exception):
    """Base per gli errori del backend."""


class FeedConfigError(AttackMapError):
    """Endpoint del feed assente o non valido."""
