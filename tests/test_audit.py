"""Tests for escalade.audit."""
import json
import tempfile
import unittest
from pathlib import Path

from escalade.audit import AuditLog


class TestAuditLog(unittest.TestCase):
    def test_session_hook_appends_tagged_lines(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "logs" / "audit.jsonl"
            hook = AuditLog(path).session_hook("abc123")
            hook("plan.start", {"model": "m"})
            hook("plan.done", {"model": "m", "chars": 10})
            lines = [json.loads(line) for line in path.read_text().splitlines()]
            self.assertEqual([line["event"] for line in lines], ["plan.start", "plan.done"])
            self.assertEqual(lines[1]["data"], {"session": "abc123", "model": "m", "chars": 10})
            self.assertIn("timestamp", lines[0])


if __name__ == "__main__":
    unittest.main()
