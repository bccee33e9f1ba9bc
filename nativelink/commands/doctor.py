import click
import os
import re
import shutil
from packaging.version import parse as parse_version, InvalidVersion
from .. import config as config_module
from .. import resolver
from ..cli_logger import logger
from ..decorators import handle_exceptions
from ..utils import run_shell_command, BuildMode

MIN_CMAKE_VERSION = "3.14"


def check_cmake():
    """Checks that cmake is on PATH and recent enough."""
    if shutil.which("cmake") is None:
        logger.error("Error: cmake not found on PATH. Please install CMake and try again.")
        return False

    stdout, stderr, returncode = run_shell_command(["cmake", "--version"])
    if returncode != 0:
        logger.error(f"Error: 'cmake --version' failed: {stderr.strip()}")
        return False

    match = re.search(r"cmake version (\S+)", stdout)
    if not match:
        logger.warning("Could not determine the CMake version.")
        return True
    try:
        version = parse_version(match.group(1))
    except InvalidVersion:
        logger.warning(f"Unrecognized CMake version string: {match.group(1)}")
        return True

    if version < parse_version(MIN_CMAKE_VERSION):
        logger.error(f"Error: CMake {version} is too old; {MIN_CMAKE_VERSION} or newer is required.")
        return False
    logger.success(f"CMake {version} found.")
    return True


def check_source_tree(source_dir):
    if not os.path.exists(os.path.join(source_dir, "CMakeLists.txt")):
        logger.error(f"Error: No CMakeLists.txt in {source_dir}. Is the llama.cpp source checked out?")
        return False
    logger.success(f"llama.cpp sources found at {source_dir}.")
    return True


@click.command()
@click.pass_context
@handle_exceptions
def doctor(ctx):
    """Check the toolchain, the llama.cpp sources and provider metadata."""
    logger.info("Running environment check...")
    conf = config_module.load_project_config(path=ctx.obj["path"])
    context = resolver.prepare_context(conf, path=ctx.obj["path"])

    ok = check_cmake()
    ok = check_source_tree(context.source_dir) and ok

    if context.mode is BuildMode.EXTERNAL:
        result = resolver.plan(context)
        for diagnostic in result.diagnostics:
            logger.warning(f"{diagnostic.code}: {diagnostic.message}")
        if result.location.cmake_config_dir.found:
            logger.success(f"Provider CMake package found at {result.location.cmake_config_dir.path}.")

    if ok:
        logger.success("Environment check completed successfully.")
    else:
        logger.error("Environment check found issues. Please review the errors above.")
