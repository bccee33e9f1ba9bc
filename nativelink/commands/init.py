import click
import os
import toml
from .. import config as config_module
from ..cli_logger import logger
from ..utils.build_mode import ACCELERATION_BACKENDS


def _prompt_for_input(prompt, default, validation_func=None, **kwargs):
    while True:
        value = click.prompt(prompt, default=default, **kwargs)
        if validation_func is None or validation_func(value):
            return value
        else:
            logger.warning(f"Invalid input for {prompt}. Please try again.")


def _prompt_for_list_input(prompt, default, choices=None):
    while True:
        value_str = click.prompt(prompt, default=default)
        # Allow empty list if the input string was empty
        if not value_str.strip():
            return []
        values = [v.strip() for v in value_str.split(',') if v.strip()]
        if values and (choices is None or all(v in choices for v in values)):
            return values
        else:
            logger.warning(f"Invalid input for {prompt}. Please provide a comma-separated list of: {', '.join(choices or [])}")


@click.command()
@click.option('--non-interactive', is_flag=True, help='Run in non-interactive mode using default values.')
@click.option('--config-file', type=click.Path(exists=True), help='Path to a TOML file with configuration values.')
@click.option('--force', is_flag=True, help='Overwrite an existing nativelink.toml.')
@click.pass_context
def init(ctx, non_interactive, config_file, force):
    """Create a nativelink.toml for a llama.cpp consumer project."""
    config_path = os.path.join(ctx.obj["path"], config_module.CONFIG_FILE)
    if os.path.exists(config_path) and not force:
        logger.error(f"Error: {config_path} already exists. Use --force to overwrite it.")
        return

    conf = config_module.get_default_config()
    if config_file:
        logger.info(f"Loading configuration from {config_file}")
        with open(config_file, 'r') as f:
            conf = toml.load(f)
    elif non_interactive:
        logger.info("Running in non-interactive mode with default values.")
    else:
        logger.info("Please provide the following details:")
        try:
            conf["project"]["source_dir"] = _prompt_for_input("llama.cpp source directory", conf["project"]["source_dir"])
            conf["project"]["out_dir"] = _prompt_for_input("Native install directory", conf["project"]["out_dir"])
            use_shared = click.confirm("Link against a shared ggml from a provider build?", default=False)
            conf["features"][config_module.SHARED_GGML_FEATURE] = use_shared
            backends = _prompt_for_list_input(
                f"Acceleration backends (comma-separated: {', '.join(ACCELERATION_BACKENDS)})", "",
                choices=ACCELERATION_BACKENDS,
            )
            for backend in backends:
                conf["features"][backend] = True
            conf["build"]["shared_libs"] = click.confirm("Build llama.cpp as shared libraries?", default=False)
            conf["build"]["profile"] = _prompt_for_input(
                "CMake build type", "Release",
                type=click.Choice(["Release", "Debug", "RelWithDebInfo", "MinSizeRel"]),
            )
        except click.Abort:
            logger.warning("\nInitialization aborted by user.")
            return

    if config_module.save_config(conf, path=ctx.obj["path"]):
        logger.success(f"Configuration saved to {config_path}")
        logger.info("Next steps: Run 'nativelink plan' to review the resolved build, then 'nativelink build'.")
