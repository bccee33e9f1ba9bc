import click
import dataclasses
import json
from .. import config as config_module
from .. import resolver
from ..cli_logger import logger
from ..decorators import handle_exceptions

@click.command()
@click.pass_context
@click.option("--target", default=None, help="Target triple (defaults to TARGET or the host).")
@click.option("--feature", "-F", "extra_features", multiple=True, help="Enable a feature (repeatable).")
@click.option("--lib", "libraries", multiple=True, help="Library the native build would produce (repeatable).")
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON.")
@handle_exceptions
def plan(ctx, target, extra_features, libraries, as_json):
    """Show the resolved build plan without running CMake."""
    conf = config_module.load_project_config(path=ctx.obj["path"])
    if target: conf.setdefault("build", {})["target"] = target
    for feature in extra_features:
        conf.setdefault("features", {})[feature] = True

    context = resolver.prepare_context(conf, path=ctx.obj["path"])
    result = resolver.plan(context, libraries=list(libraries) if libraries else None)

    location = result.location
    fixup = result.namespace_fixup
    summary = {
        "mode": result.mode.value,
        "location": {
            "library_dir": location.library_dir,
            "include_dir": location.include_dir,
            "install_prefix": location.install_prefix,
            "cmake_config_dir": {
                "state": location.cmake_config_dir.state.value,
                "path": location.cmake_config_dir.path,
            },
        },
        "defines": result.defines,
        "commands": result.commands,
        "include_paths": list(result.include_paths),
        "directives": result.directive_lines(),
        "namespace_fixup": dataclasses.asdict(fixup) if fixup else None,
        "diagnostics": [
            {"code": d.code, "level": d.level, "message": d.message} for d in result.diagnostics
        ],
    }

    if as_json:
        click.echo(json.dumps(summary, indent=4))
        return

    click.echo(f"Mode: {summary['mode']}")
    click.echo(f"Library dir: {location.library_dir or '-'}")
    click.echo(f"Include dir: {location.include_dir or '-'}")
    click.echo(f"CMake config: {location.cmake_config_dir.state.value} {location.cmake_config_dir.path or ''}".rstrip())
    click.echo("Defines:")
    for key, value in result.defines.items():
        click.echo(f"  -D{key}={value}")
    click.echo("Include paths:")
    for path in result.include_paths:
        click.echo(f"  {path}")
    if fixup:
        click.echo(f"Namespace fixup ({fixup.namespace}, applied by build):")
        if fixup.config_dir:
            click.echo(f"  patch {fixup.config_dir}/ggml-config.cmake")
        if fixup.library_dir:
            click.echo(f"  link {', '.join(f'ggml-{c}' for c in fixup.components)} in {fixup.library_dir}")
    if result.directives:
        click.echo("Directives:")
        for line in result.directive_lines():
            click.echo(f"  {line}")
    if result.diagnostics:
        logger.info("Diagnostics:")
        resolver.summarize_diagnostics(result.diagnostics)
