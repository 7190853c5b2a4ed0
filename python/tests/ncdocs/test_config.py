import os, json, tempfile, logging
import unittest as test
from pathlib import Path

import yaml

from ncdocs import config
from ncdocs.exceptions import ConfigurationError

tmpdir = tempfile.TemporaryDirectory(prefix="_test_config.")

def tearDownModule():
    tmpdir.cleanup()

class TestLoad(test.TestCase):

    def test_load_yaml(self):
        cfgfile = os.path.join(tmpdir.name, "ncdocs.yml")
        with open(cfgfile, 'w') as fd:
            fd.write("nextcloud:\n  url: https://cloud.example.com\n  timeout: 5\nroot_folder: archive\n")

        cfg = config.load_from_file(cfgfile)
        self.assertEqual(cfg['nextcloud']['url'], "https://cloud.example.com")
        self.assertEqual(cfg['nextcloud']['timeout'], 5)
        self.assertEqual(cfg['root_folder'], "archive")

    def test_load_json(self):
        cfgfile = os.path.join(tmpdir.name, "ncdocs.json")
        with open(cfgfile, 'w') as fd:
            json.dump({"share": {"require": True}}, fd)

        cfg = config.load_from_file(cfgfile)
        self.assertIs(cfg['share']['require'], True)

    def test_load_empty(self):
        cfgfile = os.path.join(tmpdir.name, "empty.yml")
        Path(cfgfile).touch()
        self.assertEqual(config.load_from_file(cfgfile), {})

    def test_load_bad(self):
        cfgfile = os.path.join(tmpdir.name, "list.yml")
        with open(cfgfile, 'w') as fd:
            fd.write("- a\n- b\n")
        with self.assertRaises(ConfigurationError):
            config.load_from_file(cfgfile)

        cfgfile = os.path.join(tmpdir.name, "broken.yml")
        with open(cfgfile, 'w') as fd:
            fd.write("nextcloud: [\n")
        with self.assertRaises(yaml.YAMLError):
            config.load_from_file(cfgfile)

        with self.assertRaises(OSError):
            config.load_from_file(os.path.join(tmpdir.name, "missing.yml"))

class TestMerge(test.TestCase):

    def test_merge_config(self):
        defc = {"a": 1, "sub": {"x": 1, "y": 2}, "keep": [1]}
        prim = {"b": 2, "sub": {"y": 3, "z": 4}}
        out = config.merge_config(prim, defc)
        self.assertEqual(out, {"a": 1, "b": 2, "sub": {"x": 1, "y": 3, "z": 4}, "keep": [1]})
        self.assertEqual(defc['sub'], {"x": 1, "y": 2})
        self.assertEqual(prim['sub'], {"y": 3, "z": 4})

    def test_with_defaults(self):
        out = config.with_defaults({"nextcloud": {"url": "https://cloud.example.com", "timeout": 5}})
        self.assertEqual(out['nextcloud']['url'], "https://cloud.example.com")
        self.assertEqual(out['nextcloud']['timeout'], 5)
        self.assertEqual(out['nextcloud']['share_timeout'], 10.0)
        self.assertEqual(out['root_folder'], "documents")
        self.assertEqual(out['default_document_type'], "other")
        self.assertIs(out['share']['enabled'], True)
        self.assertIs(out['share']['require'], False)

        self.assertEqual(config.with_defaults(None)['root_folder'], "documents")

class TestCredentials(test.TestCase):

    def test_from_config(self):
        cfg = {"nextcloud": {"url": "https://cloud.example.com", "username": "alice",
                             "password": "s3cret"}}
        self.assertEqual(config.resolve_credentials(cfg, {}),
                         ("https://cloud.example.com", "alice", "s3cret"))

    def test_from_env(self):
        env = {"NEXTCLOUD_URL": "https://env.example.com", "NEXTCLOUD_USERNAME": "bob",
               "NEXTCLOUD_PASSWORD": "pw"}
        self.assertEqual(config.resolve_credentials({}, env), ("https://env.example.com", "bob", "pw"))

        cfg = {"nextcloud": {"username": "alice"}}
        self.assertEqual(config.resolve_credentials(cfg, env), ("https://env.example.com", "alice", "pw"))

    def test_missing(self):
        cfg = {"nextcloud": {"url": "https://cloud.example.com"}}
        try:
            config.resolve_credentials(cfg, {})
            self.fail("ConfigurationError not raised")
        except ConfigurationError as ex:
            msg = str(ex)
            self.assertIn("nextcloud.username", msg)
            self.assertIn("NEXTCLOUD_PASSWORD", msg)
            self.assertNotIn("nextcloud.url", msg)

        with self.assertRaises(ConfigurationError):
            config.resolve_credentials({"nextcloud": "https://cloud.example.com"}, {})

class TestConfigureLog(test.TestCase):

    def tearDown(self):
        if config._log_handler:
            logging.getLogger().removeHandler(config._log_handler)
            config._log_handler.close()
            config._log_handler = None

    def test_configure_log(self):
        cfg = {"logdir": tmpdir.name, "loglevel": "debug"}
        config.configure_log("ncdocs.log", config=cfg)
        self.assertEqual(config.global_logfile, os.path.join(tmpdir.name, "ncdocs.log"))

        logging.getLogger("ncdocs.test").debug("hello log")
        config._log_handler.flush()
        with open(config.global_logfile) as fd:
            self.assertIn("ncdocs.test DEBUG: hello log", fd.read())

    def test_bad_level(self):
        with self.assertRaises(ConfigurationError):
            config.configure_log(config={"loglevel": "chatty"})


if __name__ == '__main__':
    test.main()
