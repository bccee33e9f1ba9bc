import platform
import sys

from ..cli_logger import logger

LINUX = "linux"
ANDROID = "android"
WINDOWS_MSVC = "windows-msvc"
WINDOWS_OTHER = "windows-other"
MACOS = "macos"
APPLE_OTHER = "apple-other"

ANDROID_TRIPLES = {
    "aarch64-linux-android",
    "armv7-linux-androideabi",
    "i686-linux-android",
    "x86_64-linux-android",
}

# Target triple fragment -> Android ABI name used by the NDK toolchain file.
ANDROID_ABI_MAP = [
    ("aarch64", "arm64-v8a"),
    ("armv7", "armeabi-v7a"),
    ("x86_64", "x86_64"),
    ("i686", "x86"),
]


def host_triple() -> str:
    machine = platform.machine().lower() or "x86_64"
    if machine in ("amd64", "x64"):
        machine = "x86_64"
    elif machine == "arm64":
        machine = "aarch64"

    if sys.platform.startswith("win"):
        return f"{machine}-pc-windows-msvc"
    if sys.platform == "darwin":
        return f"{machine}-apple-darwin"
    return f"{machine}-unknown-linux-gnu"


def parse_target_os(target: str) -> str:
    """
    Classifies a target triple into one of the supported target families.

    Raises:
        ValueError: If the triple belongs to no supported family.
    """
    if "windows" in target:
        return WINDOWS_MSVC if target.endswith("-windows-msvc") else WINDOWS_OTHER
    if "apple" in target:
        return MACOS if target.endswith("-apple-darwin") else APPLE_OTHER
    if "android" in target or target in ANDROID_TRIPLES:
        return ANDROID
    if "linux" in target:
        return LINUX
    raise ValueError(f"Unsupported target triple: {target}")


def resolve_target(target: str = "") -> tuple:
    """Returns (target_os, triple), falling back to the host triple."""
    triple = target or host_triple()
    if not target:
        logger.debug(f"No target triple configured, using host triple {triple}")
    return parse_target_os(triple), triple


def android_abi(triple: str) -> str:
    for fragment, abi in ANDROID_ABI_MAP:
        if fragment in triple:
            return abi
    raise ValueError(
        f"Unsupported Android target: {triple}. Supported targets: {', '.join(sorted(ANDROID_TRIPLES))}"
    )


def is_apple(target_os: str) -> bool:
    return target_os in (MACOS, APPLE_OTHER)


def is_windows(target_os: str) -> bool:
    return target_os in (WINDOWS_MSVC, WINDOWS_OTHER)


def shared_library_filename(name: str, target_os: str) -> str:
    """File name the platform linker resolves for a shared library called ``name``."""
    if is_windows(target_os):
        return f"{name}.lib"
    if is_apple(target_os):
        return f"lib{name}.dylib"
    return f"lib{name}.so"


def shared_library_pattern(target_os: str) -> str:
    """Glob pattern for runtime shared library files."""
    if is_windows(target_os):
        return "*.dll"
    if is_apple(target_os):
        return "*.dylib"
    return "*.so"
