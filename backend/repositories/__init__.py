from .places import CanonicalPlacesRepository, CoveragePlacesRepository
from .signals import SignalsRepository
from . import models

__all__ = ["CanonicalPlacesRepository", "CoveragePlacesRepository", "SignalsRepository", "models"]
