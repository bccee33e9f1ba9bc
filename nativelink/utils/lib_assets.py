import glob
import os
import shutil

from ..cli_logger import logger
from . import target as target_module
from .build_mode import BuildMode
from .link_directives import shared_dependency_names


def extract_lib_assets(out_dir: str, target_os: str) -> list:
    """Runtime shared libraries the native build installed."""
    libs_dir = os.path.join(out_dir, "bin" if target_module.is_windows(target_os) else "lib")
    pattern = os.path.join(libs_dir, target_module.shared_library_pattern(target_os))
    logger.debug(f"Extract lib assets {pattern}")
    return sorted(glob.glob(pattern))


def _runtime_filename(name: str, target_os: str) -> str:
    if target_module.is_windows(target_os):
        return f"{name}.dll"
    return target_module.shared_library_filename(name, target_os)


def provider_lib_assets(library_dir, lib_base_name: str, backends, target_os: str) -> list:
    """The provider's runtime libraries this consumer needs next to its binaries."""
    if not library_dir:
        logger.warning("[GGML] Library directory not found. Make sure the provider is built with use-shared-ggml.")
        return []
    if not os.path.isdir(library_dir):
        logger.warning(f"[GGML] Library directory does not exist: {library_dir}")
        return []

    wanted = {_runtime_filename(name, target_os) for name in shared_dependency_names(lib_base_name, backends)}
    assets = []
    for path in sorted(glob.glob(os.path.join(library_dir, target_module.shared_library_pattern(target_os)))):
        if os.path.basename(path) in wanted:
            logger.info(f"[GGML] Copying namespace-specific library: {os.path.basename(path)}")
            assets.append(path)
    logger.info(f"[GGML] Copied {len(assets)} namespace-specific GGML libraries")
    return assets


def _library_name(path: str) -> str:
    name = os.path.basename(path)
    return name[len("lib"):] if name.startswith("lib") else name


def link_or_copy(src: str, dst: str):
    if os.path.exists(dst):
        return
    logger.debug(f"HARD LINK {src} TO {dst}")
    try:
        os.link(src, dst)
    except OSError:
        shutil.copy2(src, dst)


def stage_shared_assets(
    out_dir: str,
    target_dir: str,
    mode: BuildMode,
    target_os: str,
    library_dir=None,
    lib_base_name: str = "ggml",
    backends=(),
    link_prefix: str = "ggml",
) -> list:
    """
    Places shared libraries next to the consumer's binaries.

    In EXTERNAL mode the locally-built ggml libraries are skipped and the
    provider's libraries are staged instead.

    Returns:
        list: Destination paths written or already present in ``target_dir``.
    """
    assets = extract_lib_assets(out_dir, target_os)
    if mode is BuildMode.EXTERNAL:
        assets = [path for path in assets if not _library_name(path).startswith(link_prefix)]
        assets += provider_lib_assets(library_dir, lib_base_name, backends, target_os)

    destinations = [target_dir, os.path.join(target_dir, "deps")]
    examples_dir = os.path.join(target_dir, "examples")
    if os.path.isdir(examples_dir):
        destinations.append(examples_dir)

    staged = []
    for destination in destinations:
        os.makedirs(destination, exist_ok=True)
        for asset in assets:
            dst = os.path.join(destination, os.path.basename(asset))
            link_or_copy(asset, dst)
            if destination == target_dir:
                staged.append(dst)
    return staged
