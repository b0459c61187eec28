"""Exception hierarchy for the terrain picking pipeline."""


class TerrainPickError(Exception):
    """Base class for every error raised by terrainpick."""


class InsufficientGrid(TerrainPickError, ValueError):
    """The lattice is smaller than 2x2 or was not completely delivered."""


class DuplicateSample(TerrainPickError, ValueError):
    """A sample arrived for a (latitude, longitude) that was already seen."""


class NormalizationError(TerrainPickError, ValueError):
    """The mesh cannot be normalized (already normalized, or zero extent)."""


class ElevationSourceError(TerrainPickError, RuntimeError):
    """The remote elevation source failed; the current build is aborted."""


class ModelNotFoundError(TerrainPickError, LookupError):
    """No stored lattice or mesh was found in the model database."""
