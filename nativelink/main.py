import click
from .cli_logger import logger
from .commands import *


@click.group()
@click.option("--path", "-p", default=".", help="Path to the project directory.")
@click.option("--quiet", "-q", is_flag=True, help="Only print directives, paths, warnings and errors.")
@click.pass_context
def cli(ctx, path, quiet):
    """nativelink: embedded or shared ggml resolution for llama.cpp builds."""
    ctx.obj = {"path": path}
    logger.quiet = quiet

cli.add_command(init)
cli.add_command(build)
cli.add_command(plan)
cli.add_command(link)
cli.add_command(include_paths)
cli.add_command(config)
cli.add_command(doctor)
cli.add_command(log)
cli.add_command(version)

if __name__ == '__main__':
    cli()
