import os
import shutil
import tempfile
import unittest
from unittest.mock import patch
from nativelink.errors import NativeLinkError, NativeBuildFailure
from nativelink.utils import target
from nativelink.utils.artifact_location import (
    ArtifactLocation,
    ConfigDirectory,
    ConfigDirectoryState,
    EMBEDDED_LOCATION,
)
from nativelink.utils.build_mode import BuildMode
from nativelink.utils.configure_resolver import (
    generate_cmake_commands,
    resolve_cmake_defines,
    run_native_build,
)

LINUX_TRIPLE = "x86_64-unknown-linux-gnu"
SETTINGS = {"shared_libs": False, "profile": "Release", "static_crt": False}

HINT_KEYS = ("GGML_LIB_DIR", "GGML_LIBRARY", "GGML_LIBRARY:FILEPATH", "GGML_INCLUDE_DIR")


@patch('nativelink.utils.configure_resolver.logger')
class TestResolveCmakeDefines(unittest.TestCase):

    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.lib_dir = os.path.join(self.root, "lib")
        os.makedirs(self.lib_dir)

    def tearDown(self):
        shutil.rmtree(self.root)

    def _defines(self, mode, location, features=None, settings=None, target_os=target.LINUX,
                 triple=LINUX_TRIPLE, namespace=None, env=None):
        return resolve_cmake_defines(
            mode, location, features or {}, settings or SETTINGS, target_os, triple,
            namespace=namespace, env=env or {},
        )

    def test_embedded_has_no_system_ggml(self, mock_logger):
        defines = self._defines(BuildMode.EMBEDDED, EMBEDDED_LOCATION)
        self.assertNotIn("LLAMA_USE_SYSTEM_GGML", defines)
        self.assertNotIn("CMAKE_PREFIX_PATH", defines)
        self.assertNotIn("ggml_DIR", defines)
        self.assertEqual(defines["BUILD_SHARED_LIBS"], "OFF")
        self.assertEqual(defines["LLAMA_BUILD_TESTS"], "OFF")
        self.assertEqual(defines["GGML_OPENMP"], "OFF")
        self.assertEqual(list(defines)[-1], "CMAKE_BUILD_TYPE")

    def test_external_with_config_dir_uses_it_exclusively(self, mock_logger):
        config_dir = os.path.join(self.lib_dir, "cmake", "ggml")
        os.makedirs(config_dir)
        location = ArtifactLocation(
            library_dir=self.lib_dir,
            include_dir=os.path.join(self.root, "include"),
            install_prefix=self.root,
            cmake_config_dir=ConfigDirectory(ConfigDirectoryState.FOUND, config_dir),
        )
        defines = self._defines(BuildMode.EXTERNAL, location)
        self.assertEqual(defines["LLAMA_USE_SYSTEM_GGML"], "ON")
        self.assertEqual(defines["CMAKE_PREFIX_PATH"], self.root)
        self.assertEqual(defines["ggml_DIR"], config_dir)
        for key in HINT_KEYS:
            self.assertNotIn(key, defines)

    def test_external_without_config_dir_uses_hints(self, mock_logger):
        lib_path = os.path.join(self.lib_dir, "libggml.so")
        open(lib_path, "w").close()
        location = ArtifactLocation(
            library_dir=self.lib_dir,
            include_dir="/opt/dep/include",
            install_prefix=self.root,
            cmake_config_dir=ConfigDirectory(
                ConfigDirectoryState.NOT_FOUND, os.path.join(self.lib_dir, "cmake", "ggml")
            ),
        )
        defines = self._defines(BuildMode.EXTERNAL, location)
        self.assertNotIn("ggml_DIR", defines)
        self.assertEqual(defines["GGML_LIB_DIR"], self.lib_dir)
        self.assertEqual(defines["GGML_LIBRARY"], lib_path)
        self.assertEqual(defines["GGML_LIBRARY:FILEPATH"], lib_path)
        self.assertEqual(defines["GGML_INCLUDE_DIR"], "/opt/dep/include")

    def test_missing_library_file_skips_filepath_hint(self, mock_logger):
        location = ArtifactLocation(library_dir=self.lib_dir, install_prefix=self.root)
        defines = self._defines(BuildMode.EXTERNAL, location)
        self.assertEqual(defines["GGML_LIB_DIR"], self.lib_dir)
        self.assertNotIn("GGML_LIBRARY", defines)
        self.assertNotIn("GGML_LIBRARY:FILEPATH", defines)
        mock_logger.warning.assert_called()

    def test_namespaced_library_hint(self, mock_logger):
        lib_path = os.path.join(self.lib_dir, "libggml_llama.so")
        open(lib_path, "w").close()
        location = ArtifactLocation(library_dir=self.lib_dir, install_prefix=self.root)
        defines = self._defines(BuildMode.EXTERNAL, location, namespace="ggml_llama")
        self.assertEqual(defines["GGML_LIBRARY:FILEPATH"], lib_path)

    def test_external_without_metadata(self, mock_logger):
        defines = self._defines(BuildMode.EXTERNAL, ArtifactLocation())
        self.assertEqual(defines["LLAMA_USE_SYSTEM_GGML"], "ON")
        self.assertNotIn("CMAKE_PREFIX_PATH", defines)
        for key in HINT_KEYS:
            self.assertNotIn(key, defines)

    def test_namespaced_found_config_is_left_untouched(self, mock_logger):
        config_dir = os.path.join(self.lib_dir, "cmake", "ggml")
        os.makedirs(config_dir)
        config_file = os.path.join(config_dir, "ggml-config.cmake")
        content = "find_library(GGML_LIBRARY ggml)\nadd_library(ggml::ggml UNKNOWN IMPORTED)\n"
        with open(config_file, "w") as f:
            f.write(content)
        location = ArtifactLocation(
            library_dir=self.lib_dir,
            install_prefix=self.root,
            cmake_config_dir=ConfigDirectory(ConfigDirectoryState.FOUND, config_dir),
        )
        defines = self._defines(BuildMode.EXTERNAL, location, namespace="ggml_whisper")
        self.assertEqual(defines["ggml_DIR"], config_dir)
        with open(config_file) as f:
            self.assertEqual(f.read(), content)

    def test_inherited_prefix_path_is_kept_after_provider_prefix(self, mock_logger):
        location = ArtifactLocation(
            library_dir=self.lib_dir,
            install_prefix=self.root,
            cmake_config_dir=ConfigDirectory(
                ConfigDirectoryState.NOT_FOUND, os.path.join(self.lib_dir, "cmake", "ggml")
            ),
        )
        defines = self._defines(BuildMode.EXTERNAL, location, env={"CMAKE_PREFIX_PATH": "/usr/local"})
        self.assertEqual(defines["CMAKE_PREFIX_PATH"], f"{self.root};/usr/local")

    def test_inherited_prefix_path_passes_through_in_embedded_mode(self, mock_logger):
        defines = self._defines(BuildMode.EMBEDDED, EMBEDDED_LOCATION, env={"CMAKE_PREFIX_PATH": "/usr/local"})
        self.assertEqual(defines["CMAKE_PREFIX_PATH"], "/usr/local")

    def test_inherited_prefix_path_without_provider_prefix(self, mock_logger):
        defines = self._defines(BuildMode.EXTERNAL, ArtifactLocation(), env={"CMAKE_PREFIX_PATH": "/usr/local"})
        self.assertEqual(defines["CMAKE_PREFIX_PATH"], "/usr/local")

    def test_backends_and_openmp(self, mock_logger):
        features = {"vulkan": True, "cuda": True, "cuda-no-vmm": True, "openmp": True}
        defines = self._defines(BuildMode.EMBEDDED, EMBEDDED_LOCATION, features=features)
        self.assertEqual(defines["GGML_VULKAN"], "ON")
        self.assertEqual(defines["GGML_CUDA"], "ON")
        self.assertEqual(defines["GGML_CUDA_NO_VMM"], "ON")
        self.assertEqual(defines["GGML_OPENMP"], "ON")
        self.assertNotIn("GGML_METAL", defines)

    def test_cmake_env_passthrough(self, mock_logger):
        env = {"CMAKE_GENERATOR_TOOLSET": "v143", "CMAKE_VERBOSE": "1", "PATH": "/bin"}
        defines = self._defines(BuildMode.EMBEDDED, EMBEDDED_LOCATION, env=env)
        self.assertEqual(defines["CMAKE_GENERATOR_TOOLSET"], "v143")
        self.assertNotIn("CMAKE_VERBOSE", defines)
        self.assertNotIn("PATH", defines)

    def test_macos_disables_blas(self, mock_logger):
        defines = self._defines(
            BuildMode.EMBEDDED, EMBEDDED_LOCATION, target_os=target.MACOS, triple="aarch64-apple-darwin"
        )
        self.assertEqual(defines["GGML_BLAS"], "OFF")

    def test_msvc_runtime_and_flags(self, mock_logger):
        settings = dict(SETTINGS, static_crt=True)
        defines = self._defines(
            BuildMode.EMBEDDED, EMBEDDED_LOCATION, settings=settings,
            target_os=target.WINDOWS_MSVC, triple="x86_64-pc-windows-msvc",
        )
        self.assertEqual(defines["CMAKE_MSVC_RUNTIME_LIBRARY"], "MultiThreaded")
        self.assertEqual(defines["CMAKE_C_FLAGS"], "/O2 /DNDEBUG /Ob2")
        self.assertEqual(defines["CMAKE_CXX_FLAGS"], "/O2 /DNDEBUG /Ob2")

    def test_linux_aarch64_disables_native(self, mock_logger):
        defines = self._defines(BuildMode.EMBEDDED, EMBEDDED_LOCATION, triple="aarch64-unknown-linux-gnu")
        self.assertEqual(defines["GGML_NATIVE"], "OFF")
        self.assertEqual(defines["GGML_CPU_ARM_ARCH"], "armv8-a")

    def test_android_requires_ndk(self, mock_logger):
        with self.assertRaises(NativeLinkError):
            self._defines(
                BuildMode.EMBEDDED, EMBEDDED_LOCATION, target_os=target.ANDROID, triple="aarch64-linux-android"
            )

    def test_android_defines(self, mock_logger):
        toolchain_dir = os.path.join(self.root, "build", "cmake")
        os.makedirs(toolchain_dir)
        toolchain = os.path.join(toolchain_dir, "android.toolchain.cmake")
        open(toolchain, "w").close()
        defines = self._defines(
            BuildMode.EMBEDDED, EMBEDDED_LOCATION, features={"openmp": True},
            target_os=target.ANDROID, triple="aarch64-linux-android",
            env={"ANDROID_NDK": self.root, "ANDROID_API_LEVEL": "30"},
        )
        self.assertEqual(defines["CMAKE_TOOLCHAIN_FILE"], toolchain)
        self.assertEqual(defines["ANDROID_ABI"], "arm64-v8a")
        self.assertEqual(defines["ANDROID_PLATFORM"], "android-30")
        self.assertEqual(defines["GGML_OPENMP"], "OFF")
        self.assertEqual(defines["CMAKE_C_FLAGS"], "-march=armv8-a")


@patch('nativelink.utils.configure_resolver.logger')
class TestCmakeCommands(unittest.TestCase):

    def test_generate_cmake_commands(self, mock_logger):
        commands = generate_cmake_commands(
            "/src/llama.cpp", "/out/build", "/out", {"BUILD_SHARED_LIBS": "OFF"}, "Release"
        )
        self.assertEqual(commands["configure_command"], [
            "cmake", "-S", "/src/llama.cpp", "-B", "/out/build",
            "-DCMAKE_INSTALL_PREFIX=/out", "-DBUILD_SHARED_LIBS=OFF",
        ])
        self.assertEqual(commands["build_command"][:5], ["cmake", "--build", "/out/build", "--config", "Release"])
        self.assertEqual(commands["install_command"], [
            "cmake", "--install", "/out/build", "--config", "Release", "--prefix", "/out",
        ])

    @patch('nativelink.utils.configure_resolver.run_checked')
    def test_run_native_build_runs_steps_in_order(self, mock_run_checked, mock_logger):
        build_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, build_dir)
        commands = {
            "configure_command": ["cmake", "configure"],
            "build_command": ["cmake", "build"],
            "install_command": ["cmake", "install"],
        }
        self.assertEqual(run_native_build(commands, build_dir, env={}), build_dir)
        self.assertEqual(
            [c.args[0] for c in mock_run_checked.call_args_list],
            [["cmake", "configure"], ["cmake", "build"], ["cmake", "install"]],
        )
        env = mock_run_checked.call_args_list[0].kwargs["env"]
        self.assertIn("CMAKE_BUILD_PARALLEL_LEVEL", env)

    @patch('nativelink.utils.configure_resolver.run_checked')
    def test_run_native_build_stops_on_failure(self, mock_run_checked, mock_logger):
        build_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, build_dir)
        mock_run_checked.side_effect = NativeBuildFailure(["cmake", "configure"], 1, "CMake Error")
        commands = {
            "configure_command": ["cmake", "configure"],
            "build_command": ["cmake", "build"],
            "install_command": ["cmake", "install"],
        }
        with self.assertRaises(NativeBuildFailure):
            run_native_build(commands, build_dir, env={})
        self.assertEqual(mock_run_checked.call_count, 1)

if __name__ == '__main__':
    unittest.main()
