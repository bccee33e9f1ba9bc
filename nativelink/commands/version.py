import click
import importlib.metadata
from .. import __version__
from ..cli_logger import logger

@click.command()
def version():
    """Print the version of nativelink."""
    try:
        ver = importlib.metadata.version("nativelink")
    except importlib.metadata.PackageNotFoundError:
        logger.warning("nativelink is not installed as a distribution; reporting the source version.")
        ver = __version__
    click.echo(f"nativelink {ver}")
