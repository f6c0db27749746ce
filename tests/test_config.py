import json
import os
import unittest
from unittest.mock import patch

from browser_proxy import config as config_module
from browser_proxy import constants

from tests._relay_test_utils import BaseProxyTest

CLEAN_ENV = {name: "" for name in config_module.ENV_OVERRIDES}


class TestConfig(BaseProxyTest):
    def write(self, data) -> None:
        with open(self.config_path, "w") as f:
            if isinstance(data, str):
                f.write(data)
            else:
                json.dump(data, f)

    def test_defaults(self) -> None:
        with patch.dict(os.environ, CLEAN_ENV):
            config = config_module.get_config()
        self.assertTrue(config["headless"])
        self.assertEqual(config["port"], constants.PORT)
        self.assertEqual(config["browser_engine"], "chromium")
        self.assertEqual(config["user_agent"], constants.DEFAULT_USER_AGENT)
        self.assertEqual(config["page_bootstrap"], "blank")
        self.assertEqual(config["max_concurrent_pages"], 0)
        self.assertEqual(config["stream_timeout_seconds"], constants.DEFAULT_STREAM_TIMEOUT_SECONDS)
        self.assertIsNone(config["executable_path"])
        self.assertIsNone(config["genspark_recaptcha_sitekey"])

    def test_missing_or_broken_file_falls_back_to_defaults(self) -> None:
        with patch.dict(os.environ, CLEAN_ENV):
            self.write("{not json")
            self.assertEqual(config_module.get_config(), config_module.get_default_config())
            self.write([1, 2, 3])
            self.assertEqual(config_module.get_config(), config_module.get_default_config())
            config_module.set_config_file(os.path.join(self._tmpdir.name, "nope.json"))
            self.assertEqual(config_module.get_config(), config_module.get_default_config())

    def test_file_values(self) -> None:
        self.write(
            {
                "headless": False,
                "browser_engine": "Camoufox",
                "user_agent": "UA/1",
                "page_bootstrap": "origin",
                "max_concurrent_pages": 4,
                "request_timeout_seconds": 15,
            }
        )
        with patch.dict(os.environ, CLEAN_ENV):
            config = config_module.get_config()
        self.assertFalse(config["headless"])
        self.assertEqual(config["browser_engine"], "camoufox")
        self.assertEqual(config["user_agent"], "UA/1")
        self.assertEqual(config["page_bootstrap"], "origin")
        self.assertEqual(config["max_concurrent_pages"], 4)
        self.assertEqual(config["request_timeout_seconds"], 15)

    def test_environment_overrides_file(self) -> None:
        self.write({"headless": True, "port": 9000})
        env = dict(CLEAN_ENV)
        env.update(
            {
                "HEADLESS": "false",
                "PORT": "8081",
                "PLAYWRIGHT_CHROMIUM_EXECUTABLE_PATH": "/usr/bin/chromium",
                "BROWSER_ENGINE": "camoufox",
            }
        )
        with patch.dict(os.environ, env):
            config = config_module.get_config()
        self.assertFalse(config["headless"])
        self.assertEqual(config["port"], 8081)
        self.assertEqual(config["executable_path"], "/usr/bin/chromium")
        self.assertEqual(config["browser_engine"], "camoufox")

    def test_bad_values_are_normalized(self) -> None:
        self.write(
            {
                "headless": "maybe",
                "port": "not a port",
                "browser_engine": "netscape",
                "page_bootstrap": "somewhere",
                "user_agent": "   ",
                "max_concurrent_pages": -3,
                "navigation_timeout_seconds": 0,
                "stream_timeout_seconds": 1e9,
                "request_timeout_seconds": "NaN",
            }
        )
        with patch.dict(os.environ, CLEAN_ENV):
            config = config_module.get_config()
        self.assertTrue(config["headless"])
        self.assertEqual(config["port"], constants.PORT)
        self.assertEqual(config["browser_engine"], "chromium")
        self.assertEqual(config["page_bootstrap"], "blank")
        self.assertEqual(config["user_agent"], constants.DEFAULT_USER_AGENT)
        self.assertEqual(config["max_concurrent_pages"], 0)
        self.assertEqual(config["navigation_timeout_seconds"], 1.0)
        self.assertEqual(config["stream_timeout_seconds"], 3600.0)
        self.assertEqual(config["request_timeout_seconds"], constants.DEFAULT_REQUEST_TIMEOUT_SECONDS)


if __name__ == "__main__":
    unittest.main()
