import os
from dataclasses import dataclass, field
from typing import Optional

from . import config as config_module
from .cli_logger import logger
from .utils import (
    ArtifactLocation,
    BuildMode,
    NamespaceFixup,
    apply_namespace_fixup,
    binding_include_paths,
    check_link_requirements,
    dependency_include_paths,
    emit_link_directives,
    enabled_backends,
    extract_lib_names,
    generate_cmake_commands,
    plan_namespace_fixup,
    render_directives,
    resolve_artifact_location,
    resolve_cmake_defines,
    resolve_namespace,
    run_native_build,
    select_build_mode,
    stage_shared_assets,
    system_link_directives,
    target,
)


@dataclass(frozen=True)
class BuildContext:
    """Everything decided before any stage runs. ``mode`` is never re-derived."""

    mode: BuildMode
    features: dict
    settings: dict
    target_os: str
    triple: str
    backends: tuple
    namespace: Optional[str]
    package: str
    link_prefix: str
    source_dir: str
    out_dir: str
    target_dir: str

    @property
    def lib_base_name(self) -> str:
        return self.namespace or self.package

    @property
    def build_dir(self) -> str:
        return os.path.join(self.out_dir, "build")


@dataclass(frozen=True)
class ResolutionResult:
    mode: BuildMode
    location: ArtifactLocation
    defines: dict
    commands: dict
    include_paths: tuple
    directives: tuple = ()
    diagnostics: tuple = field(default=(), compare=False)
    # Provider changes a namespaced build needs; applied by ``build`` only.
    namespace_fixup: Optional[NamespaceFixup] = None

    def directive_lines(self) -> list:
        return render_directives(self.directives)

    def binding_include_paths(self, source_dir: str) -> list:
        return binding_include_paths(self.include_paths, source_dir)


def prepare_context(conf, path=".", env=None, out_dir=None) -> BuildContext:
    env = os.environ if env is None else env
    features = config_module.resolve_features(conf, env)
    settings = config_module.resolve_build_settings(conf, features, env)
    paths = config_module.resolve_project_paths(conf, path)
    provider = config_module.resolve_provider(conf)
    target_os, triple = target.resolve_target(settings["target"])

    mode = select_build_mode(features)
    logger.info(f"Build mode: {mode.value} (target {triple})")

    return BuildContext(
        mode=mode,
        features=features,
        settings=settings,
        target_os=target_os,
        triple=triple,
        backends=enabled_backends(features),
        namespace=resolve_namespace(features, mode),
        package=provider["package"],
        link_prefix=provider["link_prefix"],
        source_dir=paths["source_dir"],
        out_dir=os.path.abspath(out_dir) if out_dir else paths["out_dir"],
        target_dir=paths["target_dir"],
    )


def _configure(context: BuildContext, env) -> tuple:
    location = resolve_artifact_location(context.mode, env, context.package)
    defines = resolve_cmake_defines(
        context.mode,
        location,
        context.features,
        context.settings,
        context.target_os,
        context.triple,
        namespace=context.namespace,
        env=env,
    )
    commands = generate_cmake_commands(
        context.source_dir, context.build_dir, context.out_dir, defines, context.settings["profile"]
    )
    include_paths, header_diagnostics = dependency_include_paths(context.mode, location, context.source_dir)
    return location, defines, commands, tuple(include_paths), location.diagnostics + header_diagnostics


def _link(context: BuildContext, location: ArtifactLocation, libraries, env, build_dir=None) -> tuple:
    directives, diagnostics = emit_link_directives(
        context.mode,
        libraries,
        context.backends,
        location,
        out_dir=context.out_dir,
        build_dir=build_dir,
        shared=context.settings["shared_libs"],
        lib_base_name=context.lib_base_name,
        link_prefix=context.link_prefix,
        system_directives=system_link_directives(
            context.target_os,
            context.triple,
            context.features,
            context.settings["shared_libs"],
            context.mode,
            env,
            profile=context.settings["profile"],
        ),
    )
    check_link_requirements(directives, context.mode, context.link_prefix)
    return tuple(directives), diagnostics


def plan(context: BuildContext, env=None, libraries=None) -> ResolutionResult:
    """
    Resolves every stage without running the native build.

    When ``libraries`` is given, link directives are computed for that library
    set as if the native build had produced it. The provider's install tree is
    never modified; a pending namespace fixup is only reported.
    """
    env = os.environ if env is None else env
    location, defines, commands, include_paths, diagnostics = _configure(context, env)
    directives = ()
    if libraries is not None:
        directives, link_diagnostics = _link(context, location, libraries, env)
        diagnostics += link_diagnostics
    return ResolutionResult(
        context.mode, location, defines, commands, include_paths, directives, diagnostics,
        namespace_fixup=plan_namespace_fixup(location, context.namespace, context.backends),
    )


def link_existing(context: BuildContext, env=None) -> ResolutionResult:
    """Emits link directives for a native build already installed in ``context.out_dir``."""
    env = os.environ if env is None else env
    libraries = extract_lib_names(context.out_dir, context.settings["shared_libs"], context.target_os)
    logger.debug(f"Libraries found in {context.out_dir}: {', '.join(libraries) or '(none)'}")
    return plan(context, env, libraries)


def build(context: BuildContext, env=None) -> ResolutionResult:
    """
    Runs the whole pipeline: configure, native build, library enumeration,
    link directives and shared-asset staging.

    Raises:
        NativeBuildFailure: If CMake fails; the tool's output is attached.
        LinkFailure: If the resulting link set cannot link cleanly.
    """
    env = os.environ if env is None else env
    location, defines, commands, include_paths, diagnostics = _configure(context, env)

    fixup = plan_namespace_fixup(location, context.namespace, context.backends)
    if fixup:
        apply_namespace_fixup(fixup, context.target_os)

    build_dir = run_native_build(commands, context.build_dir, env=env, verbose=context.settings["verbose"])

    libraries = extract_lib_names(context.out_dir, context.settings["shared_libs"], context.target_os)
    directives, link_diagnostics = _link(context, location, libraries, env, build_dir=build_dir)

    if context.settings["shared_libs"]:
        stage_shared_assets(
            context.out_dir,
            context.target_dir,
            context.mode,
            context.target_os,
            library_dir=location.library_dir,
            lib_base_name=context.lib_base_name,
            backends=context.backends,
            link_prefix=context.link_prefix,
        )

    return ResolutionResult(
        context.mode, location, defines, commands, include_paths, directives, diagnostics + link_diagnostics,
        namespace_fixup=fixup,
    )


def emit(result: ResolutionResult, output_file=None):
    """Writes the directive stream to stdout and, optionally, to a file."""
    lines = result.directive_lines()
    for line in lines:
        logger.directive(line)
    if output_file:
        with open(output_file, "w") as f:
            f.write("\n".join(lines) + ("\n" if lines else ""))
        logger.info(f"Wrote {len(lines)} directives to {output_file}")
    return lines


def summarize_diagnostics(diagnostics):
    for diagnostic in diagnostics:
        logger.step_info(f"- [{diagnostic.level}] {diagnostic.code}: {diagnostic.message}", indent=2)
