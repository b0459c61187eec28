"""Click CLI commands for TerrainPick."""

import functools
import logging
from typing import Optional

import click

from .camera import FrustumPolicy
from .constants import DEFAULT_DB_NAME, DEFAULT_LATTICE, SUPERSAMPLE, WINDOW_HEIGHT, WINDOW_WIDTH
from .database import ModelDatabase
from .elevation import CopernicusElevationSource, GoogleElevationSource, sample_lattice
from .errors import TerrainPickError
from .mesh import build_mesh
from .models import LatticeSpec, PathManager
from .normalize import normalize_mesh
from .picking import format_pick_message
from .scene import RenderSettings, TerrainScene

logger = logging.getLogger(__name__)


def _reports_errors(fn):
    """Turn library errors into a clean CLI failure."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except TerrainPickError as e:
            logger.error(f"{fn.__name__} failed: {e}")
            raise click.ClickException(str(e))
    return wrapper


def _scene_options(fn):
    fn = click.option('--width', default=WINDOW_WIDTH, show_default=True, help='Image width in pixels')(fn)
    fn = click.option('--height', default=WINDOW_HEIGHT, show_default=True, help='Image height in pixels')(fn)
    fn = click.option('--supersample', default=SUPERSAMPLE, show_default=True,
                      help='Render at N x resolution')(fn)
    fn = click.option('--frustum', type=click.Choice([p.value for p in FrustumPolicy]),
                      default=FrustumPolicy.SYMMETRIC.value, show_default=True,
                      help='Which NDC bounds discard a triangle')(fn)
    fn = click.option('--camera', nargs=3, type=float, default=None,
                      metavar='LAT LNG HEIGHT',
                      help='Camera position; default is straight above the lattice')(fn)
    fn = click.option('--yaw', default=0.0, help='Degrees; 0 looks east, 90 north')(fn)
    fn = click.option('--pitch', default=-30.0, help='Degrees; -90 looks straight down')(fn)
    return fn


def _load_scene(db: ModelDatabase, width: int, height: int, supersample: int,
                frustum: str, camera: Optional[tuple], yaw: float,
                pitch: float) -> TerrainScene:
    settings = RenderSettings(width=width, height=height, supersample=supersample,
                              frustum_policy=FrustumPolicy(frustum))
    scene = TerrainScene(db.load_mesh(), settings=settings)
    if camera:
        lat, lng, above = camera
        scene.set_camera(scene.camera_at(lat, lng, height=above, yaw=yaw, pitch=pitch))
    return scene


@click.group()
@click.option('--db', 'db_path', default=DEFAULT_DB_NAME, show_default=True,
              help='Model database (relative names live in the data directory)')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
@click.pass_context
def cli(ctx, db_path: str, verbose: bool):
    """TerrainPick CLI: sample terrain, render it, and pick pixels back to lat/lng."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')
    ctx.obj = ModelDatabase(db_path)


@cli.command()
@click.argument('south', type=float, default=DEFAULT_LATTICE["south"])
@click.argument('west', type=float, default=DEFAULT_LATTICE["west"])
@click.argument('north', type=float, default=DEFAULT_LATTICE["north"])
@click.argument('east', type=float, default=DEFAULT_LATTICE["east"])
@click.option('--rows', default=DEFAULT_LATTICE["rows"], show_default=True, help='Samples south to north')
@click.option('--cols', default=DEFAULT_LATTICE["cols"], show_default=True, help='Samples west to east')
@click.option('--source', type=click.Choice(['google', 'copernicus']),
              default='copernicus', show_default=True, help='Elevation source')
@click.pass_obj
@_reports_errors
def sample(db: ModelDatabase, south: float, west: float, north: float, east: float,
           rows: int, cols: int, source: str):
    """Sample an elevation lattice and store it."""
    lattice = LatticeSpec(south=south, west=west, north=north, east=east,
                       rows=rows, cols=cols)
    if source == 'google':
        mesh = sample_lattice(GoogleElevationSource(), lattice)
    else:
        with CopernicusElevationSource() as dem:
            mesh = sample_lattice(dem, lattice)
    db.save_samples(mesh.samples, mesh.width, mesh.height)
    click.echo(f"Stored {mesh.num_vertices} samples for {lattice.get_area_name()}")


@cli.command()
@click.pass_obj
@_reports_errors
def build(db: ModelDatabase):
    """Triangulate and normalize the stored lattice."""
    samples, width, height = db.load_samples()
    mesh = normalize_mesh(build_mesh(samples, width, height))
    db.save_mesh(mesh)
    click.echo(f"Built mesh: {mesh.num_vertices} vertices, {mesh.num_triangles} triangles")


@cli.command()
@click.option('--output', '-o', default='terrain.png', help='Output PNG file path')
@_scene_options
@click.pass_obj
@_reports_errors
def render(db: ModelDatabase, output: str, **scene_args):
    """Render the stored mesh to a PNG."""
    scene = _load_scene(db, **scene_args)
    path = PathManager.get_output_path(output)
    scene.image().save(path)
    click.echo(f"Rendered {scene.settings.width}x{scene.settings.height} "
               f"in {scene.frame.render_seconds:.3f}s -> {path}")


@cli.command()
@click.argument('x', type=int)
@click.argument('y', type=int)
@_scene_options
@click.pass_obj
@_reports_errors
def pick(db: ModelDatabase, x: int, y: int, **scene_args):
    """Resolve pixel X, Y to latitude, longitude and elevation."""
    scene = _load_scene(db, **scene_args)
    click.echo(format_pick_message(x, y, scene.pick(x, y)))


@cli.command()
@click.option('--host', default=None, help='Bind address')
@click.option('--port', default=None, type=int, help='Bind port')
def serve(host: Optional[str], port: Optional[int]):
    """Run the query service."""
    import uvicorn

    from backend import config

    uvicorn.run("backend.app:app", host=host or config.HOST, port=port or config.PORT)


if __name__ == '__main__':
    cli()
