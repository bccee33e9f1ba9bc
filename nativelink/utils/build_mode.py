import enum

from ..cli_logger import logger
from ..config import SHARED_GGML_FEATURE


class BuildMode(enum.Enum):
    EMBEDDED = "embedded"
    EXTERNAL = "external"


# Fixed enumeration order: graphics, vector-math offload, distributed-compute offload.
ACCELERATION_BACKENDS = ["vulkan", "metal", "blas", "cuda", "hip"]

NAMESPACE_FEATURES = [
    ("namespace-llama", "ggml_llama"),
    ("namespace-whisper", "ggml_whisper"),
]


def select_build_mode(features) -> BuildMode:
    """Reads the shared-ggml flag once. Absent or false means EMBEDDED."""
    if features.get(SHARED_GGML_FEATURE, False):
        return BuildMode.EXTERNAL
    return BuildMode.EMBEDDED


def enabled_backends(features) -> tuple:
    return tuple(name for name in ACCELERATION_BACKENDS if features.get(name, False))


def resolve_namespace(features, mode: BuildMode):
    """Returns the provider's namespaced library base name, or None."""
    for feature, namespace in NAMESPACE_FEATURES:
        if features.get(feature, False):
            logger.info(f"[GGML] Using namespaced GGML libraries: {namespace}")
            return namespace
    if mode is BuildMode.EXTERNAL:
        logger.warning("[GGML] No namespace specified, using default GGML symbols.")
        logger.warning("[GGML] If llama.cpp and whisper.cpp share one process, enable namespace-llama or namespace-whisper.")
    return None
