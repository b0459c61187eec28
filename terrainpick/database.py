"""ModelDatabase: SQLite storage for a sampled lattice and its mesh."""

import logging
import pathlib
import sqlite3
from typing import List, Tuple, Union

import numpy as np

from .constants import DEFAULT_DB_NAME
from .errors import ModelNotFoundError
from .models import GeoSample, Mesh, PathManager
from .normalize import Normalization, face_normals

logger = logging.getLogger(__name__)

_TABLES = ("samples", "vertices", "triangles", "properties")
_MESH_PROPERTIES = ("ref_latitude", "ref_longitude", "min_elevation", "max_extent",
                    "width", "height")


class ModelDatabase:
    """One terrain model per database file.

    ``samples`` caches the raw lattice so a paid elevation source is queried
    once; ``vertices``, ``triangles`` and ``properties`` hold the normalized
    mesh and the constants needed to map it back to geodetic coordinates.
    """

    def __init__(self, db_path: Union[str, pathlib.Path] = DEFAULT_DB_NAME):
        path = pathlib.Path(db_path)
        self.db_path = path if path.is_absolute() else PathManager.get_data_path(str(path))
        self.connection_settings = {'timeout': 20}
        self.init_database()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, **self.connection_settings)
        conn.execute("PRAGMA busy_timeout = 10000")
        return conn

    def init_database(self):
        """Create the tables if they do not exist yet."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS samples (
                    lattice_row INTEGER NOT NULL,
                    lattice_col INTEGER NOT NULL,
                    lat REAL NOT NULL,
                    lng REAL NOT NULL,
                    elevation REAL NOT NULL,
                    PRIMARY KEY (lattice_row, lattice_col)
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS vertices (
                    idx INTEGER PRIMARY KEY,
                    x REAL NOT NULL,
                    y REAL NOT NULL,
                    z REAL NOT NULL,
                    lat REAL NOT NULL,
                    lng REAL NOT NULL,
                    elevation REAL NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS triangles (
                    id INTEGER PRIMARY KEY,
                    v1 INTEGER NOT NULL,
                    v2 INTEGER NOT NULL,
                    v3 INTEGER NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS properties (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.commit()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def _set_properties(self, cursor: sqlite3.Cursor, **values) -> None:
        cursor.executemany(
            "INSERT OR REPLACE INTO properties (key, value) VALUES (?, ?)",
            [(key, str(value)) for key, value in values.items()])

    def _clear_mesh(self, cursor: sqlite3.Cursor) -> None:
        cursor.execute("DELETE FROM vertices")
        cursor.execute("DELETE FROM triangles")
        cursor.executemany("DELETE FROM properties WHERE key = ?",
                           [(key,) for key in _MESH_PROPERTIES])

    def get_property(self, key: str) -> str:
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM properties WHERE key = ?",
                               (key,)).fetchone()
        if row is None:
            raise ModelNotFoundError(f"No '{key}' stored in {self.db_path}")
        return row[0]

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    def save_samples(self, samples: List[GeoSample], width: int, height: int) -> None:
        """Replace the cached lattice with *samples* (row-major, W x H)."""
        if len(samples) != width * height:
            raise ValueError(f"Expected {width * height} samples, got {len(samples)}")
        rows = [(i // width, i % width, s.latitude, s.longitude, s.elevation)
                for i, s in enumerate(samples)]
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM samples")
            # A new lattice invalidates the mesh built from the previous one
            self._clear_mesh(cursor)
            cursor.executemany(
                "INSERT INTO samples (lattice_row, lattice_col, lat, lng, elevation) VALUES (?, ?, ?, ?, ?)",
                rows)
            self._set_properties(cursor, lattice_width=width, lattice_height=height)
            conn.commit()
        logger.info(f"Stored {len(rows)} samples ({width}x{height}) in {self.db_path.name}")

    def load_samples(self) -> Tuple[List[GeoSample], int, int]:
        """(samples, width, height) of the cached lattice, row-major."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT lat, lng, elevation FROM samples ORDER BY lattice_row, lattice_col").fetchall()
        if not rows:
            raise ModelNotFoundError(f"No samples stored in {self.db_path}")
        width = int(self.get_property("lattice_width"))
        height = int(self.get_property("lattice_height"))
        return [GeoSample(*row) for row in rows], width, height

    # ------------------------------------------------------------------
    # Mesh
    # ------------------------------------------------------------------

    def save_mesh(self, mesh: Mesh) -> None:
        """Store a normalized mesh, replacing any previous one."""
        if not mesh.is_normalized:
            raise ValueError("Only a normalized mesh can be stored")

        vertices = [(i, *map(float, mesh.positions[i]),
                     s.latitude, s.longitude, s.elevation)
                    for i, s in enumerate(mesh.samples)]
        triangles = [(i, *face) for i, face in enumerate(mesh.faces.tolist())]
        norm = mesh.normalization

        with self._get_connection() as conn:
            cursor = conn.cursor()
            self._clear_mesh(cursor)
            cursor.executemany(
                "INSERT INTO vertices (idx, x, y, z, lat, lng, elevation) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)", vertices)
            cursor.executemany(
                "INSERT INTO triangles (id, v1, v2, v3) VALUES (?, ?, ?, ?)",
                triangles)
            self._set_properties(
                cursor,
                ref_latitude=norm.ref_latitude, ref_longitude=norm.ref_longitude,
                min_elevation=norm.min_elevation, max_extent=norm.max_extent,
                width=mesh.width, height=mesh.height)
            conn.commit()
        logger.info(f"Stored mesh: {len(vertices)} vertices, "
                    f"{len(triangles)} triangles in {self.db_path.name}")

    def load_mesh(self) -> Mesh:
        with self._get_connection() as conn:
            vertices = conn.execute(
                "SELECT x, y, z, lat, lng, elevation FROM vertices ORDER BY idx").fetchall()
            triangles = conn.execute(
                "SELECT v1, v2, v3 FROM triangles ORDER BY id").fetchall()
        if not vertices or not triangles:
            raise ModelNotFoundError(f"No mesh stored in {self.db_path}")

        normalization = Normalization(
            ref_latitude=float(self.get_property("ref_latitude")),
            ref_longitude=float(self.get_property("ref_longitude")),
            min_elevation=float(self.get_property("min_elevation")),
            max_extent=float(self.get_property("max_extent")))

        positions = np.array([v[:3] for v in vertices], dtype=np.float64)
        faces = np.array(triangles, dtype=np.int64)
        return Mesh(width=int(self.get_property("width")),
                    height=int(self.get_property("height")),
                    samples=[GeoSample(*v[3:]) for v in vertices],
                    faces=faces, positions=positions,
                    normals=face_normals(positions, faces),
                    normalization=normalization)

    def has_mesh(self) -> bool:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM triangles").fetchone()[0] > 0

    def clear(self) -> None:
        with self._get_connection() as conn:
            for table in _TABLES:
                conn.execute(f"DELETE FROM {table}")
            conn.commit()
