import toml
import os
from .cli_logger import logger

CONFIG_FILE = "nativelink.toml"

# Feature that switches the consumer from building ggml to linking the provider's copy.
SHARED_GGML_FEATURE = "use-shared-ggml"

KNOWN_FEATURES = [
    SHARED_GGML_FEATURE,
    "vulkan",
    "metal",
    "blas",
    "cuda",
    "hip",
    "cuda-no-vmm",
    "openmp",
    "mtmd",
    "dynamic-link",
    "namespace-llama",
    "namespace-whisper",
    "native",
]

CARGO_FEATURE_PREFIX = "CARGO_FEATURE_"


def get_default_config():
    return {
        "project": {
            "source_dir": "llama.cpp",
            "out_dir": os.path.join("target", "native"),
            "target_dir": "target",
        },
        "features": {name: False for name in KNOWN_FEATURES},
        "build": {
            "shared_libs": False,
            "profile": "Release",
            "static_crt": False,
            "target": "",
        },
        "provider": {
            "package": "ggml",
            "link_prefix": "ggml",
        },
    }

def load_config(path="."):
    config_path = os.path.join(path, CONFIG_FILE)
    logger.info(f"Loading configuration from {config_path}")
    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                return toml.load(f)
        except toml.TomlDecodeError as e:
            logger.error(f"Error decoding TOML file at {config_path}: {e}")
            logger.info("Please check the file's format for syntax errors.")
        except IOError as e:
            logger.error(f"Error reading configuration file at {config_path}: {e}")
            logger.info("Please check file permissions.")
    return {}

def save_config(config, path="."):
    config_path = os.path.join(path, CONFIG_FILE)
    logger.info(f"Saving configuration to {config_path}")
    try:
        with open(config_path, "w") as f:
            toml.dump(config, f)
        return True
    except IOError as e:
        logger.error(f"Error saving configuration to {config_path}: {e}")
        logger.info("Please check file permissions and ensure the directory is writable.")
        return False


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "on", "yes")


def resolve_features(conf, env=None):
    """
    Merges the [features] table with cargo-style CARGO_FEATURE_<NAME> variables.

    A feature is enabled when either source enables it. Unknown names are kept
    so that callers can pass through features this tool does not interpret.
    """
    env = os.environ if env is None else env
    features = {name: False for name in KNOWN_FEATURES}
    for name, value in (conf or {}).get("features", {}).items():
        features[name] = _as_bool(value)

    for key in env:
        if key.startswith(CARGO_FEATURE_PREFIX):
            name = key[len(CARGO_FEATURE_PREFIX):].lower().replace("_", "-")
            features[name] = True

    return features


def resolve_build_settings(conf, features, env=None):
    """Applies LLAMA_* and TARGET environment overrides to the [build] table."""
    env = os.environ if env is None else env
    build_conf = (conf or {}).get("build", {})

    shared_libs = _as_bool(build_conf.get("shared_libs", False)) or features.get("dynamic-link", False)
    if "LLAMA_BUILD_SHARED_LIBS" in env:
        shared_libs = env["LLAMA_BUILD_SHARED_LIBS"] == "1"

    profile = env.get("LLAMA_LIB_PROFILE") or build_conf.get("profile") or "Release"

    static_crt = _as_bool(build_conf.get("static_crt", False))
    if "LLAMA_STATIC_CRT" in env:
        static_crt = env["LLAMA_STATIC_CRT"] == "1"

    target = env.get("TARGET") or build_conf.get("target") or ""

    return {
        "shared_libs": shared_libs,
        "profile": profile,
        "static_crt": static_crt,
        "target": target,
        "verbose": "CMAKE_VERBOSE" in env,
    }


def resolve_project_paths(conf, path="."):
    """Returns absolute source, output and target directories for the project."""
    project = (conf or {}).get("project", {})
    defaults = get_default_config()["project"]

    def _abs(key):
        value = project.get(key) or defaults[key]
        return os.path.abspath(os.path.join(path, value))

    return {
        "source_dir": _abs("source_dir"),
        "out_dir": _abs("out_dir"),
        "target_dir": _abs("target_dir"),
    }


def resolve_provider(conf):
    provider = (conf or {}).get("provider", {})
    defaults = get_default_config()["provider"]
    return {
        "package": provider.get("package") or defaults["package"],
        "link_prefix": provider.get("link_prefix") or defaults["link_prefix"],
    }


def load_project_config(path="."):
    """Loads nativelink.toml, falling back to defaults plus environment overrides."""
    conf = load_config(path)
    if not conf:
        logger.info(f"No {CONFIG_FILE} found in {path}; using defaults and environment settings.")
        return get_default_config()
    return conf
