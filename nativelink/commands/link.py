import click
from .. import config as config_module
from .. import resolver
from ..cli_logger import logger
from ..decorators import handle_exceptions

@click.command()
@click.pass_context
@click.option("--out-dir", default=None, help="Install prefix of an existing native build.")
@click.option("--output", "-o", default=None, help="Also write the directive stream to this file.")
@handle_exceptions
def link(ctx, out_dir, output):
    """Emit link directives for an already installed native build."""
    conf = config_module.load_project_config(path=ctx.obj["path"])
    context = resolver.prepare_context(conf, path=ctx.obj["path"], out_dir=out_dir)
    logger.info(f"Collecting libraries from {context.out_dir}...")

    result = resolver.link_existing(context)
    lines = resolver.emit(result, output_file=output)
    logger.success(f"Emitted {len(lines)} link directives.")
