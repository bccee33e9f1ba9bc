import os

from ..cli_logger import logger
from ..errors import Diagnostic, HEADERS_UNKNOWN
from .artifact_location import ArtifactLocation
from .build_mode import BuildMode


def dependency_include_paths(mode: BuildMode, location: ArtifactLocation, source_dir: str) -> tuple:
    """
    Returns (include_paths, diagnostics) for the ggml headers.

    EMBEDDED uses the headers vendored in the llama.cpp tree. EXTERNAL uses
    the provider's include directory, or nothing when it is unknown, leaving
    the compiler's default search path to supply the headers.
    """
    if mode is BuildMode.EMBEDDED:
        logger.debug("Using embedded ggml headers")
        return [os.path.join(source_dir, "ggml", "include")], ()

    if location.include_dir:
        logger.debug(f"Using provider include directory: {location.include_dir}")
        return [location.include_dir], ()

    message = (
        "[GGML] Provider include directory unknown (DEP_GGML_INCLUDE not set); "
        "bindings will rely on the compiler's default include path."
    )
    logger.warning(message)
    return [], (Diagnostic(HEADERS_UNKNOWN, "warning", message),)


def binding_include_paths(include_paths, source_dir: str) -> list:
    """Prefixes the consumer's own llama.cpp headers."""
    return [os.path.join(source_dir, "include")] + list(include_paths)


def binding_clang_args(include_paths, source_dir: str) -> list:
    return [f"-I{path}" for path in binding_include_paths(include_paths, source_dir)]
