import os
import re
from dataclasses import dataclass
from typing import Optional

from ..cli_logger import logger
from . import target as target_module
from .artifact_location import ArtifactLocation
from .lib_assets import link_or_copy

CONFIG_FILE_NAME = "ggml-config.cmake"

BACKEND_COMPONENTS = ["cpu", "cuda", "vulkan", "metal", "blas", "hip"]

# Bare "ggml" only; already-namespaced names must not match again.
GGML_LIBRARY_PATTERN = re.compile(r"find_library\(GGML_LIBRARY ggml(?=[\s)])")


def _namespace_replacements(namespace: str) -> list:
    # Specific find_library calls first, then component names, then quoted names.
    replacements = [
        ("find_library(GGML_BASE_LIBRARY ggml-base", f"find_library(GGML_BASE_LIBRARY {namespace}-base"),
    ]
    replacements += [(f"ggml-{component}", f"{namespace}-{component}") for component in BACKEND_COMPONENTS]
    for quote in ('"', "'"):
        replacements.append((f"{quote}ggml{quote}", f"{quote}{namespace}{quote}"))
        replacements.append((f"{quote}ggml-base{quote}", f"{quote}{namespace}-base{quote}"))
    return replacements


def patch_cmake_config(config_dir: str, namespace: str) -> bool:
    """
    Rewrites the provider's packaged ggml-config.cmake to look up namespaced libraries.

    The packaged config searches for ``ggml``, ``ggml-base`` and ``ggml-<backend>``,
    while a namespaced provider installs ``<namespace>``, ``<namespace>-base`` and so on.

    Args:
        config_dir: Directory holding ggml-config.cmake.
        namespace: Library base name installed by the provider, e.g. ``ggml_llama``.

    Returns:
        True if the file was patched or already matched, False if it could not be read or written.
    """
    config_path = os.path.join(config_dir, CONFIG_FILE_NAME)
    if not os.path.exists(config_path):
        logger.info(f"  - No {CONFIG_FILE_NAME} in {config_dir}, nothing to patch.")
        return True

    try:
        with open(config_path, "r") as f:
            content = f.read()
    except IOError as e:
        logger.warning(f"[GGML] Could not read {CONFIG_FILE_NAME} to patch: {e}")
        logger.warning("CMake may fail to find namespaced libraries.")
        return False

    patched = content
    for old, new in _namespace_replacements(namespace):
        patched = patched.replace(old, new)
    patched = GGML_LIBRARY_PATTERN.sub(f"find_library(GGML_LIBRARY {namespace}", patched)

    if patched == content:
        logger.debug(f"{config_path} already uses namespace {namespace}")
        return True

    try:
        with open(config_path, "w") as f:
            f.write(patched)
    except IOError as e:
        logger.warning(f"[GGML] Failed to patch {CONFIG_FILE_NAME}: {e}")
        logger.warning("CMake may fail to find namespaced libraries.")
        return False

    logger.success(f"[GGML] Patched {CONFIG_FILE_NAME} to use namespaced library: {namespace}")
    return True


# Component libraries every namespaced provider installs next to the main library.
FALLBACK_COMPONENTS = ["base", "cpu"]


@dataclass(frozen=True)
class NamespaceFixup:
    """Changes a namespaced provider install needs before the native build can find it."""

    namespace: str
    config_dir: Optional[str] = None
    library_dir: Optional[str] = None
    components: tuple = ()


def plan_namespace_fixup(location: ArtifactLocation, namespace, backends=()) -> Optional[NamespaceFixup]:
    """Describes the fixup without touching the provider's files. None when nothing applies."""
    if not namespace:
        return None
    config_dir = location.cmake_config_dir.path if location.cmake_config_dir.found else None
    if not (config_dir or location.library_dir):
        return None
    return NamespaceFixup(
        namespace=namespace,
        config_dir=config_dir,
        library_dir=location.library_dir,
        components=tuple(FALLBACK_COMPONENTS) + tuple(backends),
    )


def link_namespace_components(library_dir: str, namespace: str, components, target_os: str) -> list:
    """
    Links ``<namespace>-<component>`` to ``ggml-<component>`` inside the provider's library directory.

    An unpatched ggml-config.cmake then still resolves its component libraries.
    Existing files are left alone.

    Returns:
        list: Paths of the fallback libraries created.
    """
    main_library = os.path.join(library_dir, target_module.shared_library_filename(namespace, target_os))
    if not os.path.exists(main_library):
        logger.warning(
            f"[GGML] Namespaced library {os.path.basename(main_library)} not found in {library_dir}. "
            f"Make sure the provider is built with the {namespace} namespace."
        )
        return []

    created = []
    for component in components:
        source = os.path.join(
            library_dir, target_module.shared_library_filename(f"{namespace}-{component}", target_os)
        )
        fallback = os.path.join(
            library_dir, target_module.shared_library_filename(f"ggml-{component}", target_os)
        )
        if not os.path.exists(source) or os.path.exists(fallback):
            continue
        try:
            link_or_copy(source, fallback)
        except OSError as e:
            logger.warning(f"[GGML] Could not create fallback library {os.path.basename(fallback)}: {e}")
            continue
        logger.debug(f"Created fallback library: {os.path.basename(fallback)} -> {source}")
        created.append(fallback)
    return created


def apply_namespace_fixup(fixup: NamespaceFixup, target_os: str) -> bool:
    """Patches the packaged config and links fallback component libraries. False if the patch failed."""
    ok = True
    if fixup.config_dir:
        ok = patch_cmake_config(fixup.config_dir, fixup.namespace)
    if fixup.library_dir and os.path.isdir(fixup.library_dir):
        link_namespace_components(fixup.library_dir, fixup.namespace, fixup.components, target_os)
    return ok
