import glob
import os
from dataclasses import dataclass
from typing import Optional

from ..cli_logger import logger
from ..errors import Diagnostic, LinkFailure, LIBRARY_DIRECTORY_UNKNOWN
from . import target as target_module
from .artifact_location import ArtifactLocation
from .build_mode import BuildMode
from .command_executor import run_shell_command

SEARCH = "search"
LIB = "lib"

STATIC = "static"
DYLIB = "dylib"

# Where a linked library comes from.
LOCAL = "local"
EXTERNAL = "external"
SYSTEM = "system"

# Components every provider install ships, before optional backends.
REQUIRED_SHARED_COMPONENTS = ["", "-base", "-cpu"]

APPLE_FRAMEWORKS = ["Foundation", "Metal", "MetalKit", "Accelerate"]


@dataclass(frozen=True)
class LinkDirective:
    kind: str
    value: str
    link_kind: Optional[str] = None
    origin: str = SYSTEM

    def render(self) -> str:
        if self.kind == SEARCH:
            prefix = f"{self.link_kind}=" if self.link_kind else ""
            return f"cargo:rustc-link-search={prefix}{self.value}"
        if self.link_kind:
            return f"cargo:rustc-link-lib={self.link_kind}={self.value}"
        return f"cargo:rustc-link-lib={self.value}"


def search(path, link_kind="native") -> LinkDirective:
    return LinkDirective(SEARCH, path, link_kind)


def lib(name, link_kind=None, origin=SYSTEM) -> LinkDirective:
    return LinkDirective(LIB, name, link_kind, origin)


def _library_pattern(target_os: str, shared: bool) -> str:
    if target_module.is_windows(target_os):
        return "*.lib"
    if target_module.is_apple(target_os):
        return "*.dylib" if shared else "*.a"
    return "*.so" if shared else "*.a"


def extract_lib_names(out_dir: str, shared: bool, target_os: str) -> list:
    """
    Enumerates the libraries the native build installed under ``out_dir/lib*``.

    Static archives without a ``lib`` prefix are renamed so the linker can find them.
    Names are returned sorted so that output does not depend on directory order.
    """
    pattern = os.path.join(out_dir, "lib*", _library_pattern(target_os, shared))
    logger.debug(f"Extract libs {pattern}")

    lib_names = []
    for path in sorted(glob.glob(pattern)):
        stem = os.path.splitext(os.path.basename(path))[0]
        if stem.startswith("lib"):
            lib_name = stem[len("lib"):]
        else:
            if path.endswith(".a"):
                renamed = os.path.join(os.path.dirname(path), f"lib{stem}.a")
                os.rename(path, renamed)
            lib_name = stem
        if lib_name not in lib_names:
            lib_names.append(lib_name)
    return lib_names


def filter_shared_dependency(libraries, mode: BuildMode, link_prefix="ggml") -> list:
    """In EXTERNAL mode drops every name the provider already links."""
    if mode is BuildMode.EMBEDDED:
        return list(libraries)
    dropped = [name for name in libraries if name.startswith(link_prefix)]
    if dropped:
        logger.debug(f"Dropping provider-supplied libraries: {', '.join(dropped)}")
    return [name for name in libraries if not name.startswith(link_prefix)]


def shared_dependency_names(lib_base_name: str, backends) -> list:
    names = [f"{lib_base_name}{suffix}" for suffix in REQUIRED_SHARED_COMPONENTS]
    names += [f"{lib_base_name}-{backend}" for backend in backends]
    return names


def local_search_paths(out_dir: str, build_dir: Optional[str] = None) -> list:
    paths = [os.path.join(out_dir, "lib"), os.path.join(out_dir, "lib64")]
    if build_dir:
        paths.append(build_dir)
    return paths


def macos_link_search_path() -> Optional[str]:
    """Directory holding the clang runtime, which older macOS linkers do not search by default."""
    stdout, _, returncode = run_shell_command(["clang", "--print-search-dirs"])
    if returncode != 0:
        logger.debug("failed to run 'clang --print-search-dirs', continuing without a link search path")
        return None
    for line in stdout.splitlines():
        if "libraries: =" in line:
            return f"{line.split('=')[1]}/lib/darwin"
    logger.debug("failed to determine link search path, continuing without it")
    return None


def system_link_directives(
    target_os: str,
    triple: str,
    features: dict,
    shared: bool,
    mode: BuildMode,
    env=None,
    profile: str = "Release",
) -> tuple:
    """Returns (search_directives, lib_directives) for platform and toolkit libraries."""
    env = os.environ if env is None else env
    searches, libs = [], []

    if mode is BuildMode.EMBEDDED and features.get("vulkan"):
        vulkan_sdk = env.get("VULKAN_SDK")
        if target_module.is_windows(target_os):
            if vulkan_sdk:
                searches.append(search(os.path.join(vulkan_sdk, "Lib"), link_kind=None))
            libs.append(lib("vulkan-1"))
        elif target_os == target_module.LINUX:
            if vulkan_sdk:
                searches.append(search(os.path.join(vulkan_sdk, "lib"), link_kind=None))
            libs.append(lib("vulkan"))

    if mode is BuildMode.EMBEDDED and features.get("cuda") and not shared:
        cuda_path = env.get("CUDA_PATH")
        if cuda_path:
            for sub in ("lib64", os.path.join("lib", "x64"), "lib"):
                candidate = os.path.join(cuda_path, sub)
                if os.path.isdir(candidate):
                    searches.append(search(candidate))
        if target_module.is_windows(target_os):
            libs += [lib("cudart"), lib("cublas"), lib("cublasLt")]
            if not features.get("cuda-no-vmm"):
                libs.append(lib("cuda"))
        else:
            libs += [lib("cudart_static", STATIC), lib("cublas_static", STATIC), lib("cublasLt_static", STATIC)]
            if not features.get("cuda-no-vmm"):
                libs.append(lib("cuda"))
            libs.append(lib("culibos", STATIC))

    if target_os == target_module.ANDROID:
        libs += [lib("log"), lib("android")]

    if features.get("openmp") and "gnu" in triple:
        libs.append(lib("gomp"))

    if target_os == target_module.WINDOWS_MSVC:
        libs.append(lib("advapi32"))
        if profile == "Debug":
            libs.append(lib("msvcrtd", DYLIB))
    elif target_os == target_module.LINUX:
        libs.append(lib("stdc++", DYLIB))
    elif target_module.is_apple(target_os):
        libs += [lib(framework, "framework") for framework in APPLE_FRAMEWORKS]
        libs.append(lib("c++"))
        if target_os == target_module.MACOS:
            clang_rt_dir = macos_link_search_path()
            if clang_rt_dir:
                searches.append(search(clang_rt_dir, link_kind=None))
                libs.append(lib("clang_rt.osx"))

    return searches, libs


def emit_link_directives(
    mode: BuildMode,
    libraries,
    backends,
    location: ArtifactLocation,
    out_dir: Optional[str] = None,
    build_dir: Optional[str] = None,
    shared: bool = False,
    lib_base_name: str = "ggml",
    link_prefix: str = "ggml",
    system_directives: tuple = ((), ()),
) -> tuple:
    """
    Produces the ordered link directive list for the outer build system.

    Args:
        mode: Selected build mode.
        libraries: Library names enumerated from the native build output.
        backends: Enabled acceleration backends, in enumeration order.
        location: Provider artifact location; only ``library_dir`` is read.
        out_dir: Native install prefix, for local search paths.
        build_dir: CMake build directory, for local search paths.
        shared: Whether locally-built libraries are shared (dylib) or static.
        lib_base_name: Provider library base name (namespaced or ``ggml``).
        link_prefix: Name prefix identifying provider-owned libraries.
        system_directives: (search, lib) directives for platform libraries.

    Returns:
        tuple: (directives, diagnostics). Every search directive precedes every lib directive.
    """
    diagnostics = []
    searches = []
    libs = []
    local_kind = DYLIB if shared else STATIC

    if mode is BuildMode.EXTERNAL:
        if location.library_dir:
            searches.append(search(location.library_dir))
            logger.debug(f"[GGML] Library search path: {location.library_dir}")
        else:
            message = (
                "[GGML] Provider library directory unknown; relying on the linker's "
                "default search path for shared ggml libraries."
            )
            logger.warning(message)
            diagnostics.append(Diagnostic(LIBRARY_DIRECTORY_UNKNOWN, "warning", message))

    if out_dir:
        searches += [search(path, link_kind=None) for path in local_search_paths(out_dir, build_dir)]

    for name in filter_shared_dependency(libraries, mode, link_prefix):
        libs.append(lib(name, local_kind, LOCAL))

    if mode is BuildMode.EXTERNAL:
        for name in shared_dependency_names(lib_base_name, backends):
            libs.append(lib(name, DYLIB, EXTERNAL))

    extra_searches, extra_libs = system_directives
    searches += list(extra_searches)
    libs += list(extra_libs)

    return searches + libs, tuple(diagnostics)


def check_link_requirements(directives, mode: BuildMode, link_prefix="ggml"):
    """
    Raises LinkFailure when the directive set cannot link cleanly.

    A locally-built provider library in EXTERNAL mode would duplicate the
    provider's symbols; an empty local library set would leave them missing.

    ``emit_link_directives`` already filters provider libraries, so the
    duplicate check only fires for directive lists assembled by other callers
    (e.g. merged with extra directives before checking).
    """
    local = [d for d in directives if d.kind == LIB and d.origin == LOCAL]
    if mode is BuildMode.EXTERNAL:
        duplicated = [d.value for d in local if d.value.startswith(link_prefix)]
        if duplicated:
            raise LinkFailure(
                f"Locally-built provider libraries would duplicate shared symbols: {', '.join(duplicated)}"
            )
    if not local:
        raise LinkFailure("The native build produced no libraries to link.")


def render_directives(directives) -> list:
    return [directive.render() for directive in directives]
