import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from release_deployer.config import ImagePairing, load_stage_config, parse_image_pairings
from release_deployer.errors import ConfigurationError


def _write_config(root: Path, global_payload: dict, stage: str = "staging", stage_payload=None) -> None:
    (root / "stages").mkdir(parents=True, exist_ok=True)
    (root / "config.json").write_text(json.dumps(global_payload), encoding="utf-8")
    if stage_payload is not None:
        (root / "stages" / f"{stage}.json").write_text(json.dumps(stage_payload), encoding="utf-8")


BASE = {
    "application": "shop",
    "deploy_to": "/srv/shop",
    "servers": ["web1", "web2"],
    "keep_releases": 3,
}


class StageConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        patcher = mock.patch.dict(os.environ, {}, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        for key in ("RELEASE_DEPLOYER_SSH_PASSWORD", "RELEASE_DEPLOYER_SSH_KEY_PATH", "RELEASE_DEPLOYER_SSH_USER"):
            os.environ.pop(key, None)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_stage_values_override_global(self) -> None:
        _write_config(self.root, BASE, stage_payload={"servers": ["app1"], "keep_releases": 0})
        config = load_stage_config("staging", str(self.root))
        self.assertEqual(config.stage, "staging")
        self.assertEqual(config.application, "shop")
        self.assertEqual(config.servers, ("app1",))
        self.assertEqual(config.keep_releases, 0)
        self.assertEqual(config.images, ())
        self.assertEqual(config.code_dir, self.root / "stages" / "staging" / "code")
        self.assertEqual(config.hooks_file, self.root / "hooks.py")

    def test_missing_stage_file_is_an_error(self) -> None:
        _write_config(self.root, BASE)
        with self.assertRaises(ConfigurationError):
            load_stage_config("production", str(self.root))

    def test_missing_global_file_is_an_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_stage_config("staging", str(self.root))

    def test_required_values(self) -> None:
        payload = {k: v for k, v in BASE.items() if k != "deploy_to"}
        _write_config(self.root, payload, stage_payload={})
        with self.assertRaisesRegex(ConfigurationError, "deploy_to"):
            load_stage_config("staging", str(self.root))

    def test_relative_deploy_to_rejected(self) -> None:
        _write_config(self.root, BASE, stage_payload={"deploy_to": "srv/shop"})
        with self.assertRaises(ConfigurationError):
            load_stage_config("staging", str(self.root))

    def test_negative_keep_releases_rejected(self) -> None:
        _write_config(self.root, BASE, stage_payload={"keep_releases": -1})
        with self.assertRaises(ConfigurationError):
            load_stage_config("staging", str(self.root))

    def test_duplicate_servers_rejected(self) -> None:
        _write_config(self.root, BASE, stage_payload={"servers": ["a", "a"]})
        with self.assertRaises(ConfigurationError):
            load_stage_config("staging", str(self.root))

    def test_comment_keys_ignored_and_code_dir_relative_to_config(self) -> None:
        _write_config(
            self.root,
            {**BASE, "_comment": "ignored", "code_dir": "build"},
            stage_payload={"_note": 1},
        )
        config = load_stage_config("staging", str(self.root))
        self.assertEqual(config.code_dir, self.root / "build")

    def test_password_comes_from_environment(self) -> None:
        _write_config(self.root, {**BASE, "ssh_user": "deploy"}, stage_payload={})
        os.environ["RELEASE_DEPLOYER_SSH_PASSWORD"] = "hunter2"
        config = load_stage_config("staging", str(self.root))
        self.assertEqual(config.ssh.password, "hunter2")
        self.assertEqual(config.ssh.user, "deploy")

    def test_invalid_json(self) -> None:
        (self.root / "stages").mkdir()
        (self.root / "config.json").write_text("{not json", encoding="utf-8")
        with self.assertRaises(ConfigurationError):
            load_stage_config("staging", str(self.root))

    def test_server_with_bad_port_rejected(self) -> None:
        _write_config(self.root, BASE, stage_payload={"servers": ["h1", "h2:abc"]})
        with self.assertRaisesRegex(ConfigurationError, "h2:abc"):
            load_stage_config("staging", str(self.root))

    def test_server_with_empty_host_rejected(self) -> None:
        _write_config(self.root, BASE, stage_payload={"servers": ["deploy@:22"]})
        with self.assertRaises(ConfigurationError):
            load_stage_config("staging", str(self.root))

    def test_server_handles_with_user_and_port_accepted(self) -> None:
        _write_config(self.root, BASE, stage_payload={"servers": ["deploy@web1:2222", "web2"]})
        config = load_stage_config("staging", str(self.root))
        self.assertEqual(config.servers, ("deploy@web1:2222", "web2"))

    def test_undecodable_stage_file_is_a_configuration_error(self) -> None:
        _write_config(self.root, BASE)
        (self.root / "stages" / "staging.json").write_bytes(b'{"keep_releases": 3, "_note": "\xff"}')
        with self.assertRaises(ConfigurationError):
            load_stage_config("staging", str(self.root))


class ImagePairingTests(unittest.TestCase):
    def test_flat_list_forms_pairs_in_order(self) -> None:
        pairs = parse_image_pairings(["repo/a:1", "reg/a:1", "repo/b:2", "reg/b:2"])
        self.assertEqual(
            pairs,
            (ImagePairing("repo/a:1", "reg/a:1"), ImagePairing("repo/b:2", "reg/b:2")),
        )

    def test_object_list(self) -> None:
        pairs = parse_image_pairings([{"source": "a", "target": "b"}])
        self.assertEqual(pairs, (ImagePairing("a", "b"),))

    def test_odd_flat_list_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_image_pairings(["a", "b", "c"])

    def test_empty_and_missing(self) -> None:
        self.assertEqual(parse_image_pairings(None), ())
        self.assertEqual(parse_image_pairings([]), ())

    def test_wrong_type_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_image_pairings("a,b")


if __name__ == "__main__":
    unittest.main()
