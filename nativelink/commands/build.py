import click
from .. import config as config_module
from .. import resolver
from ..cli_logger import logger
from ..decorators import handle_exceptions

@click.command()
@click.pass_context
@click.option("--target", default=None, help="Target triple (defaults to TARGET or the host).")
@click.option("--profile", default=None, help="CMake build type (e.g., Release, Debug).")
@click.option("--out-dir", default=None, help="Install prefix for the native build.")
@click.option("--feature", "-F", "extra_features", multiple=True, help="Enable a feature (repeatable).")
@click.option("--output", "-o", default=None, help="Also write the directive stream to this file.")
@handle_exceptions
def build(ctx, target, profile, out_dir, extra_features, output):
    """Build llama.cpp natively and emit link directives.

    Selects embedded or shared ggml, configures and runs CMake, then prints the
    ordered link directives for the outer build system.
    """
    conf = config_module.load_project_config(path=ctx.obj["path"])

    # Override config values with command-line arguments if provided
    if target: conf.setdefault("build", {})["target"] = target
    if profile: conf.setdefault("build", {})["profile"] = profile
    for feature in extra_features:
        conf.setdefault("features", {})[feature] = True

    context = resolver.prepare_context(conf, path=ctx.obj["path"], out_dir=out_dir)
    logger.info(f"Building llama.cpp from {context.source_dir} into {context.out_dir}...")

    result = resolver.build(context)
    resolver.emit(result, output_file=output)

    if result.diagnostics:
        logger.info("Build finished with diagnostics:")
        resolver.summarize_diagnostics(result.diagnostics)
    logger.success(f"Native build completed in {result.mode.value} mode.")
