"""Tests for escalade.cli."""
import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

import yaml

from escalade.cli import build_parser, main


class TestParser(unittest.TestCase):
    def test_ask_arguments(self):
        args = build_parser().parse_args([
            "ask", "--prompt", "q", "--context", "a", "--context", "b", "--no-plan-model", "--retrieve", "3",
        ])
        self.assertEqual(args.context, ["a", "b"])
        self.assertTrue(args.no_plan_model)
        self.assertEqual(args.retrieve, 3)
        self.assertFalse(args.progress)

    def test_serve_port_is_int(self):
        args = build_parser().parse_args(["serve", "--port", "4100"])
        self.assertEqual(args.port, 4100)


class TestCommands(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.user_path = Path(self.tmpdir.name) / "config.yaml"
        self.env = patch.dict(os.environ, {"ESCALADE_CONFIG": str(self.user_path)})
        self.env.start()

    def tearDown(self):
        self.env.stop()
        self.tmpdir.cleanup()

    def test_mdl_set_persists_slot(self):
        with redirect_stdout(io.StringIO()) as out:
            main(["mdl", "set", "verifier", "phi3"])
        self.assertEqual(json.loads(out.getvalue())["slots"]["reviewer"], "phi3")
        saved = yaml.safe_load(self.user_path.read_text())
        self.assertEqual(saved["models"]["slots"]["reviewer"], "phi3")

    def test_mdl_set_unknown_slot_exits(self):
        with self.assertRaises(SystemExit) as ctx:
            main(["mdl", "set", "judge", "phi3"])
        self.assertEqual(ctx.exception.code, 2)
        self.assertFalse(self.user_path.exists())

    @patch("escalade.cli.OllamaClient")
    def test_models_check_fails_on_missing(self, mock_client_cls):
        mock_client_cls.from_config.return_value.has_model.side_effect = lambda name: name != "nomic-embed-text"
        with redirect_stdout(io.StringIO()) as out:
            with self.assertRaises(SystemExit) as ctx:
                main(["models", "check"])
        self.assertEqual(ctx.exception.code, 1)
        self.assertEqual(json.loads(out.getvalue())["missing"], ["nomic-embed-text"])

    def test_config_show(self):
        with redirect_stdout(io.StringIO()) as out:
            main(["config", "show"])
        self.assertIn("orchestration", json.loads(out.getvalue()))


if __name__ == "__main__":
    unittest.main()
