import enum
import os
from dataclasses import dataclass, field
from typing import Optional

from ..cli_logger import logger
from ..errors import Diagnostic, METADATA_ABSENT, CONFIG_DIRECTORY_MISSING
from .build_mode import BuildMode

# Provider metadata is published under DEP_<LINKS>_*; the RS names are the legacy crate name.
METADATA_PREFIXES = ["DEP_GGML", "DEP_GGML_RS"]


class ConfigDirectoryState(enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not-found"
    NOT_APPLICABLE = "not-applicable"


@dataclass(frozen=True)
class ConfigDirectory:
    state: ConfigDirectoryState
    path: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.state is ConfigDirectoryState.FOUND


NOT_APPLICABLE = ConfigDirectory(ConfigDirectoryState.NOT_APPLICABLE)


@dataclass(frozen=True)
class ArtifactLocation:
    library_dir: Optional[str] = None
    include_dir: Optional[str] = None
    install_prefix: Optional[str] = None
    cmake_config_dir: ConfigDirectory = NOT_APPLICABLE
    diagnostics: tuple = field(default=(), compare=False)


EMBEDDED_LOCATION = ArtifactLocation()


def _read_metadata(env, key):
    for prefix in METADATA_PREFIXES:
        value = env.get(f"{prefix}_{key}")
        if value:
            return value
    return None


def find_cmake_config_dir(install_prefix, package="ggml") -> ConfigDirectory:
    if not install_prefix:
        return NOT_APPLICABLE
    path = os.path.join(install_prefix, "lib", "cmake", package)
    if os.path.isdir(path):
        return ConfigDirectory(ConfigDirectoryState.FOUND, path)
    return ConfigDirectory(ConfigDirectoryState.NOT_FOUND, path)


def resolve_artifact_location(mode: BuildMode, env=None, package="ggml") -> ArtifactLocation:
    """
    Resolves where the provider unit installed its library and headers.

    Args:
        mode: The selected build mode. Embedded builds never consult provider metadata.
        env: Mapping holding the provider's DEP_* metadata (defaults to os.environ).
        package: CMake package name used for the config directory lookup.

    Returns:
        ArtifactLocation: Library and include directories are resolved independently;
        either may be None. Missing metadata is reported in ``diagnostics``, never raised.
    """
    if mode is BuildMode.EMBEDDED:
        return EMBEDDED_LOCATION

    env = os.environ if env is None else env
    diagnostics = []

    root = _read_metadata(env, "ROOT")
    lib_dir = _read_metadata(env, "LIB_DIR")
    include_dir = _read_metadata(env, "INCLUDE")

    if root is None and lib_dir is not None:
        root = os.path.dirname(os.path.normpath(lib_dir)) or None
        logger.debug(f"Derived provider root {root} from library directory {lib_dir}")
    if lib_dir is None and root is not None:
        lib_dir = os.path.join(root, "lib")

    if root is None:
        message = (
            "Provider metadata DEP_GGML_ROOT / DEP_GGML_LIB_DIR not found; "
            "falling back to direct path hints."
        )
        # Only surfaces to the user through the warnings it causes downstream.
        logger.debug(message)
        diagnostics.append(Diagnostic(METADATA_ABSENT, "info", message))

    if include_dir is None and root is not None:
        candidate = os.path.join(root, "include")
        if os.path.isdir(candidate):
            logger.debug(f"Using provider include fallback {candidate}")
            include_dir = candidate

    config_dir = find_cmake_config_dir(root, package)
    if config_dir.state is ConfigDirectoryState.NOT_FOUND:
        message = f"Packaged CMake config not found at {config_dir.path}; using manual path hints."
        logger.info(message)
        diagnostics.append(Diagnostic(CONFIG_DIRECTORY_MISSING, "info", message))
    elif config_dir.found:
        logger.debug(f"Found packaged CMake config at {config_dir.path}")

    logger.debug(f"ggml library dir: {lib_dir}")
    logger.debug(f"ggml include dir: {include_dir}")

    return ArtifactLocation(
        library_dir=lib_dir,
        include_dir=include_dir,
        install_prefix=root,
        cmake_config_dir=config_dir,
        diagnostics=tuple(diagnostics),
    )
