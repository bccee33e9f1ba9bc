import click
import os
import json
from .. import config as config_module
from ..cli_logger import logger


def _require_config(ctx):
    conf = config_module.load_config(path=ctx.obj["path"])
    if not conf:
        logger.error("Error: No nativelink.toml found. Please run 'nativelink init' first.")
    return conf


def _parse_value(value):
    """TOML-typed value from a command-line string: booleans, integers, else the string."""
    lowered = value.strip().lower()
    if lowered in ("true", "on", "yes"):
        return True
    if lowered in ("false", "off", "no"):
        return False
    if lowered.isdigit():
        return int(lowered)
    return value


@click.group()
@click.pass_context
def config(ctx):
    """View or edit the nativelink.toml configuration file."""
    pass

@config.command()
@click.pass_context
def view(ctx):
    """Print the nativelink.toml file as written."""
    if not _require_config(ctx):
        return
    config_file_path = os.path.join(ctx.obj["path"], config_module.CONFIG_FILE)
    try:
        with open(config_file_path, 'r') as f:
            click.echo(f.read())
    except IOError as e:
        logger.error(f"Error reading nativelink.toml at {config_file_path}: {e}")
        logger.info("Please check file permissions.")

@config.command(name="list")
@click.pass_context
def list_values(ctx):
    """List all configuration keys and values as JSON."""
    conf = _require_config(ctx)
    if conf:
        click.echo(json.dumps(conf, indent=4))

@config.command()
@click.pass_context
def features(ctx):
    """Show the effective feature flags, including CARGO_FEATURE_* overrides."""
    conf = config_module.load_config(path=ctx.obj["path"])
    for name, enabled in sorted(config_module.resolve_features(conf).items()):
        click.echo(f"{name} = {'on' if enabled else 'off'}")

@config.command()
@click.argument('key')
@click.pass_context
def get(ctx, key):
    """Get a value by dotted key, e.g. features.use-shared-ggml."""
    conf = _require_config(ctx)
    if not conf:
        return

    value = conf
    try:
        for k in key.split('.'):
            value = value[k]
        click.echo(value)
    except (KeyError, TypeError):
        logger.error(f"Error: Key '{key}' not found in nativelink.toml")

@config.command(name="set")
@click.argument('key')
@click.argument('value')
@click.pass_context
def set_value(ctx, key, value):
    """Set a value by dotted key. true/false and integers are stored typed."""
    conf = _require_config(ctx)
    if not conf:
        return

    keys = key.split('.')
    d = conf
    for k in keys[:-1]:
        d = d.setdefault(k, {})
    d[keys[-1]] = _parse_value(value)

    if config_module.save_config(conf, path=ctx.obj["path"]):
        logger.info(f"Set '{key}' to '{value}'")

@config.command()
@click.argument('key')
@click.pass_context
def unset(ctx, key):
    """Remove a key from the nativelink.toml file."""
    conf = _require_config(ctx)
    if not conf:
        return

    keys = key.split('.')
    d = conf
    try:
        for k in keys[:-1]:
            d = d[k]
        del d[keys[-1]]
        if config_module.save_config(conf, path=ctx.obj["path"]):
            logger.info(f"Unset '{key}'")
    except (KeyError, TypeError):
        logger.error(f"Error: Key '{key}' not found in nativelink.toml")
