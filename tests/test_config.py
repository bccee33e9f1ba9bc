import os
import shutil
import tempfile
import toml
import unittest
from unittest.mock import patch
from click.testing import CliRunner
from nativelink import config
from nativelink.commands.config import config as config_command
import importlib
import json

config_command_module = importlib.import_module('nativelink.commands.config')

class TestConfig(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.test_dir, config.CONFIG_FILE)
        self.sample_config = {
            "project": {
                "source_dir": "vendor/llama.cpp",
            },
            "features": {
                "use-shared-ggml": False,
                "cuda": True,
            },
        }
        config.save_config(self.sample_config, path=self.test_dir)

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_load_config_not_found(self):
        """Test that loading a non-existent config returns an empty dict."""
        os.remove(self.config_path)
        cfg = config.load_config(path=self.test_dir)
        self.assertEqual(cfg, {})

    def test_save_and_load_config(self):
        """Test saving a config and then loading it back."""
        self.assertTrue(os.path.exists(self.config_path))
        loaded_config = config.load_config(path=self.test_dir)
        self.assertEqual(loaded_config, self.sample_config)
        with open(self.config_path, "r") as f:
            toml_content = toml.load(f)
        self.assertEqual(toml_content, self.sample_config)

    def test_load_project_config_falls_back_to_defaults(self):
        os.remove(self.config_path)
        self.assertEqual(config.load_project_config(self.test_dir), config.get_default_config())

    def test_get_value(self):
        """Test getting a value from the config via the CLI."""
        runner = CliRunner()
        result = runner.invoke(config_command, ['get', 'features.cuda'], obj={"path": self.test_dir})
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.stdout.strip(), 'True')

    def test_get_nested_value(self):
        """Test getting a nested value from the config via the CLI."""
        runner = CliRunner()
        result = runner.invoke(config_command, ['get', 'project.source_dir'], obj={"path": self.test_dir})
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.stdout.strip(), 'vendor/llama.cpp')

    @patch.object(config_command_module, 'logger')
    def test_get_non_existent_value(self, mock_logger):
        """Test getting a non-existent value from the config via the CLI."""
        runner = CliRunner()
        result = runner.invoke(config_command, ['get', 'project.nonexistent'], obj={"path": self.test_dir})
        self.assertEqual(result.exit_code, 0)
        mock_logger.error.assert_called_with("Error: Key 'project.nonexistent' not found in nativelink.toml")

    def test_set_value_is_typed(self):
        """Test setting a boolean flag via the CLI stores a TOML boolean."""
        runner = CliRunner()
        result = runner.invoke(config_command, ['set', 'features.use-shared-ggml', 'true'], obj={"path": self.test_dir})
        self.assertEqual(result.exit_code, 0)
        loaded_config = config.load_config(path=self.test_dir)
        self.assertIs(loaded_config['features']['use-shared-ggml'], True)

    def test_set_nested_value(self):
        """Test setting a nested value in a new table via the CLI."""
        runner = CliRunner()
        result = runner.invoke(config_command, ['set', 'build.profile', 'Debug'], obj={"path": self.test_dir})
        self.assertEqual(result.exit_code, 0)
        loaded_config = config.load_config(path=self.test_dir)
        self.assertEqual(loaded_config['build']['profile'], 'Debug')

    def test_unset_value(self):
        runner = CliRunner()
        result = runner.invoke(config_command, ['unset', 'features.cuda'], obj={"path": self.test_dir})
        self.assertEqual(result.exit_code, 0)
        loaded_config = config.load_config(path=self.test_dir)
        self.assertNotIn('cuda', loaded_config['features'])

    def test_list_values(self):
        runner = CliRunner()
        result = runner.invoke(config_command, ['list'], obj={"path": self.test_dir})
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(json.loads(result.stdout), self.sample_config)

    def test_features(self):
        runner = CliRunner()
        result = runner.invoke(config_command, ['features'], obj={"path": self.test_dir})
        self.assertEqual(result.exit_code, 0)
        self.assertIn("cuda = on", result.stdout)

    @patch.object(config_command_module, 'logger')
    def test_missing_config_file(self, mock_logger):
        os.remove(self.config_path)
        runner = CliRunner()
        result = runner.invoke(config_command, ['get', 'features.cuda'], obj={"path": self.test_dir})
        self.assertEqual(result.exit_code, 0)
        mock_logger.error.assert_called_once()


class TestResolveSettings(unittest.TestCase):

    def test_cargo_features_merge_with_table(self):
        conf = {"features": {"vulkan": True}}
        env = {"CARGO_FEATURE_USE_SHARED_GGML": "1", "CARGO_FEATURE_CUDA_NO_VMM": "1"}
        features = config.resolve_features(conf, env)
        self.assertTrue(features["use-shared-ggml"])
        self.assertTrue(features["cuda-no-vmm"])
        self.assertTrue(features["vulkan"])
        self.assertFalse(features["metal"])

    def test_build_settings_defaults(self):
        settings = config.resolve_build_settings({}, {}, env={})
        self.assertEqual(settings, {
            "shared_libs": False,
            "profile": "Release",
            "static_crt": False,
            "target": "",
            "verbose": False,
        })

    def test_build_settings_env_overrides(self):
        conf = {"build": {"shared_libs": True, "profile": "Debug"}}
        env = {
            "LLAMA_BUILD_SHARED_LIBS": "0",
            "LLAMA_LIB_PROFILE": "RelWithDebInfo",
            "LLAMA_STATIC_CRT": "1",
            "TARGET": "aarch64-apple-darwin",
            "CMAKE_VERBOSE": "1",
        }
        settings = config.resolve_build_settings(conf, {}, env)
        self.assertFalse(settings["shared_libs"])
        self.assertEqual(settings["profile"], "RelWithDebInfo")
        self.assertTrue(settings["static_crt"])
        self.assertEqual(settings["target"], "aarch64-apple-darwin")
        self.assertTrue(settings["verbose"])

    def test_dynamic_link_feature_enables_shared_libs(self):
        settings = config.resolve_build_settings({}, {"dynamic-link": True}, env={})
        self.assertTrue(settings["shared_libs"])

    def test_project_paths_are_absolute(self):
        paths = config.resolve_project_paths({}, "/work/app")
        self.assertEqual(paths["source_dir"], os.path.abspath("/work/app/llama.cpp"))
        self.assertEqual(paths["out_dir"], os.path.abspath("/work/app/target/native"))

    def test_provider_defaults(self):
        self.assertEqual(config.resolve_provider({}), {"package": "ggml", "link_prefix": "ggml"})

if __name__ == '__main__':
    unittest.main()
