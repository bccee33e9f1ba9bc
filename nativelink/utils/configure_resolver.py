import os

from ..cli_logger import logger
from ..errors import NativeLinkError
from . import target as target_module
from .artifact_location import ArtifactLocation, ConfigDirectoryState
from .build_mode import BuildMode
from .command_executor import run_checked

# Would need extra sources shipped with the consumer, so they stay off.
DISABLED_LLAMA_TARGETS = [
    "LLAMA_BUILD_TESTS",
    "LLAMA_BUILD_EXAMPLES",
    "LLAMA_BUILD_SERVER",
    "LLAMA_BUILD_TOOLS",
    "LLAMA_CURL",
]

BACKEND_DEFINES = {
    "vulkan": "GGML_VULKAN",
    "metal": "GGML_METAL",
    "blas": "GGML_BLAS",
    "cuda": "GGML_CUDA",
    "hip": "GGML_HIP",
}

ANDROID_ARCH_FLAGS = {
    "arm64-v8a": ["-march=armv8-a"],
    "armeabi-v7a": ["-march=armv7-a", "-mfpu=neon", "-mthumb"],
    "x86_64": ["-march=x86-64"],
    "x86": ["-march=i686"],
}

MSVC_RELEASE_FLAGS = ["/O2", "/DNDEBUG", "/Ob2"]
OPTIMIZED_PROFILES = ("Release", "RelWithDebInfo", "MinSizeRel")

NDK_ENV_VARS = ["ANDROID_NDK", "NDK_ROOT", "ANDROID_NDK_ROOT"]
DEFAULT_ANDROID_PLATFORM = "android-28"


def _on_off(value: bool) -> str:
    return "ON" if value else "OFF"


def _external_defines(location: ArtifactLocation, namespace, target_os: str) -> dict:
    """
    Defines that redirect the llama.cpp CMake project to a pre-built ggml.

    Precedence: a packaged config directory is used exclusively. Direct library
    and include hints are only set when no packaged config was found.
    """
    defines = {"LLAMA_USE_SYSTEM_GGML": "ON"}

    if location.install_prefix:
        defines["CMAKE_PREFIX_PATH"] = location.install_prefix

    config_dir = location.cmake_config_dir
    if config_dir.state is ConfigDirectoryState.FOUND:
        defines["ggml_DIR"] = config_dir.path
        return defines

    lib_base_name = namespace or "ggml"
    if location.library_dir:
        defines["GGML_LIB_DIR"] = location.library_dir
        lib_path = os.path.join(
            location.library_dir, target_module.shared_library_filename(lib_base_name, target_os)
        )
        if os.path.exists(lib_path):
            defines["GGML_LIBRARY"] = lib_path
            defines["GGML_LIBRARY:FILEPATH"] = lib_path
            logger.info(f"[GGML] Setting GGML_LIBRARY to: {lib_path}")
        else:
            logger.warning(f"[GGML] Library {os.path.basename(lib_path)} not found in {location.library_dir}.")
    if location.include_dir:
        defines["GGML_INCLUDE_DIR"] = location.include_dir

    if not (location.library_dir or location.include_dir):
        logger.warning("[GGML] No packaged config and no direct path hints; CMake will search default locations.")
    return defines


def _find_android_ndk(env) -> str:
    for key in NDK_ENV_VARS:
        if env.get(key):
            return env[key]
    raise NativeLinkError(
        "Android NDK not found. Please set one of: " + ", ".join(NDK_ENV_VARS)
    )


def validate_android_ndk(ndk_path: str):
    if not os.path.exists(ndk_path):
        raise NativeLinkError(f"Android NDK path does not exist: {ndk_path}")
    toolchain_file = os.path.join(ndk_path, "build", "cmake", "android.toolchain.cmake")
    if not os.path.exists(toolchain_file):
        raise NativeLinkError(
            f"Android NDK toolchain file not found: {toolchain_file}. "
            "This indicates an incomplete NDK installation."
        )
    return toolchain_file


def _android_defines(triple: str, env) -> tuple:
    ndk = _find_android_ndk(env)
    toolchain_file = validate_android_ndk(ndk)
    abi = target_module.android_abi(triple)

    platform = env.get("ANDROID_PLATFORM")
    if not platform:
        level = env.get("ANDROID_API_LEVEL")
        platform = f"android-{level}" if level else DEFAULT_ANDROID_PLATFORM

    defines = {
        "CMAKE_TOOLCHAIN_FILE": toolchain_file,
        "ANDROID_PLATFORM": platform,
        "ANDROID_ABI": abi,
        "GGML_LLAMAFILE": "OFF",
    }
    return defines, ANDROID_ARCH_FLAGS.get(abi, [])


def resolve_cmake_defines(
    mode: BuildMode,
    location: ArtifactLocation,
    features: dict,
    settings: dict,
    target_os: str,
    triple: str,
    namespace=None,
    env=None,
) -> dict:
    """
    Builds the ordered CMake define set for the llama.cpp native build.

    Args:
        mode: Selected build mode; only EXTERNAL adds the system-ggml redirection.
        location: Provider artifact location (ignored in EMBEDDED mode).
        features: Resolved feature flags.
        settings: Resolved build settings (shared_libs, profile, static_crt).
        target_os: Target family from ``target.parse_target_os``.
        triple: Target triple.
        namespace: Provider library base name for namespaced builds, or None.
        env: Environment mapping for CMAKE_* passthrough and NDK lookup.

    Returns:
        dict: Define name to value, in the order they are passed to CMake.
    """
    env = os.environ if env is None else env
    defines = {}
    cflags = []

    if mode is BuildMode.EXTERNAL:
        defines.update(_external_defines(location, namespace, target_os))

    for name in DISABLED_LLAMA_TARGETS:
        defines[name] = "OFF"

    if features.get("mtmd"):
        defines["LLAMA_BUILD_COMMON"] = "ON"
        defines["LLAMA_BUILD_TOOLS"] = "ON"

    for key in sorted(env):
        if key.startswith("CMAKE_") and key != "CMAKE_VERBOSE":
            defines[key] = env[key]

    # The provider prefix is searched first; an inherited CMAKE_PREFIX_PATH is kept after it.
    if mode is BuildMode.EXTERNAL and location.install_prefix:
        inherited = env.get("CMAKE_PREFIX_PATH")
        defines["CMAKE_PREFIX_PATH"] = (
            f"{location.install_prefix};{inherited}" if inherited else location.install_prefix
        )

    defines["BUILD_SHARED_LIBS"] = _on_off(settings["shared_libs"])

    if target_module.is_apple(target_os) and not features.get("blas"):
        defines["GGML_BLAS"] = "OFF"

    if target_os == target_module.WINDOWS_MSVC:
        if settings["profile"] in OPTIMIZED_PROFILES:
            cflags += MSVC_RELEASE_FLAGS
        runtime = "MultiThreaded" if settings["static_crt"] else "MultiThreadedDLL"
        defines["CMAKE_MSVC_RUNTIME_LIBRARY"] = runtime

    if target_os == target_module.ANDROID:
        android_defines, arch_flags = _android_defines(triple, env)
        defines.update(android_defines)
        cflags += arch_flags

    if target_os == target_module.LINUX and "aarch64" in triple and not features.get("native"):
        defines["GGML_NATIVE"] = "OFF"
        defines["GGML_CPU_ARM_ARCH"] = "armv8-a"

    for backend, define in BACKEND_DEFINES.items():
        if features.get(backend):
            defines[define] = "ON"
    if features.get("cuda") and features.get("cuda-no-vmm"):
        defines["GGML_CUDA_NO_VMM"] = "ON"
    if features.get("vulkan") and target_os == target_module.WINDOWS_MSVC:
        cflags.append("/FS")

    defines["GGML_OPENMP"] = _on_off(features.get("openmp", False) and target_os != target_module.ANDROID)

    if cflags:
        for key in ("CMAKE_C_FLAGS", "CMAKE_CXX_FLAGS"):
            existing = defines.get(key, "")
            defines[key] = " ".join(filter(None, [existing] + cflags))

    defines["CMAKE_BUILD_TYPE"] = settings["profile"]
    return defines


def generate_cmake_commands(source_dir: str, build_dir: str, out_dir: str, defines: dict, profile: str) -> dict:
    logger.info(f"  - Generating CMake build commands for {os.path.basename(source_dir)}.")

    configure_cmd = [
        "cmake",
        "-S", source_dir,
        "-B", build_dir,
        f"-DCMAKE_INSTALL_PREFIX={out_dir}",
    ] + [f"-D{key}={value}" for key, value in defines.items()]

    build_cmd = ["cmake", "--build", build_dir, "--config", profile, "--parallel", str(os.cpu_count() or 1)]
    install_cmd = ["cmake", "--install", build_dir, "--config", profile, "--prefix", out_dir]
    return {
        "configure_command": configure_cmd,
        "build_command": build_cmd,
        "install_command": install_cmd,
    }


def run_native_build(commands: dict, build_dir: str, env=None, verbose=False) -> str:
    """
    Runs configure, build and install in order.

    Returns:
        str: The CMake build directory.

    Raises:
        NativeBuildFailure: With the tool's own output, from the first step that fails.
    """
    env = dict(os.environ if env is None else env)
    env.setdefault("CMAKE_BUILD_PARALLEL_LEVEL", str(os.cpu_count() or 1))
    os.makedirs(build_dir, exist_ok=True)

    for step in ("configure_command", "build_command", "install_command"):
        command = commands[step]
        logger.info(f"  - Running {step.replace('_command', '')} step...")
        run_checked(command, env=env, verbose=verbose)
    logger.success("  - Native build finished.")
    return build_dir
