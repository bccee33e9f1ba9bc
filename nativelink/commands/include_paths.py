import click
import json
from .. import config as config_module
from .. import resolver
from ..decorators import handle_exceptions
from ..utils import binding_clang_args

@click.command(name="include-paths")
@click.pass_context
@click.option("--clang-args", is_flag=True, help="Print -I arguments for the binding generator.")
@click.option("--json", "as_json", is_flag=True, help="Print the include paths as a JSON list.")
@click.option("--deps-only", is_flag=True, help="Omit llama.cpp's own include directory.")
@handle_exceptions
def include_paths(ctx, clang_args, as_json, deps_only):
    """Print the header search paths for binding generation."""
    conf = config_module.load_project_config(path=ctx.obj["path"])
    context = resolver.prepare_context(conf, path=ctx.obj["path"])
    result = resolver.plan(context)

    if clang_args:
        values = binding_clang_args(result.include_paths, context.source_dir)
    elif deps_only:
        values = list(result.include_paths)
    else:
        values = result.binding_include_paths(context.source_dir)

    if as_json:
        click.echo(json.dumps(values))
    else:
        for value in values:
            click.echo(value)
