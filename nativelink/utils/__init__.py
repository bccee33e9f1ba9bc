from .command_executor import run_shell_command, run_checked
from .build_mode import BuildMode, select_build_mode, enabled_backends, resolve_namespace
from .artifact_location import (
    ArtifactLocation,
    ConfigDirectory,
    ConfigDirectoryState,
    resolve_artifact_location,
)
from .configure_resolver import resolve_cmake_defines, generate_cmake_commands, run_native_build
from .link_directives import (
    LinkDirective,
    emit_link_directives,
    extract_lib_names,
    system_link_directives,
    check_link_requirements,
    render_directives,
)
from .header_paths import dependency_include_paths, binding_include_paths, binding_clang_args
from .lib_assets import stage_shared_assets
from .patch_resolver import NamespaceFixup, plan_namespace_fixup, apply_namespace_fixup
from . import target
