import json
import shutil
import sys
import unittest
from pathlib import Path
from uuid import uuid4

from loguru import logger

from swe_agent_loop.logging_config import setup_logging


PROJECT_ROOT = Path(__file__).resolve().parents[1]


class LoggingConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"logging-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)

    def tearDown(self) -> None:
        logger.remove()
        logger.add(sys.stderr)
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_records_carry_the_conversation_id(self) -> None:
        path = self._tmp_dir / "engine.log"
        descriptions = setup_logging("DEBUG", [{"type": "file", "path": str(path)}])
        logger.bind(conversation_id="c42").info("bound record")
        logger.info("unbound record")
        logger.remove()

        lines = path.read_text().splitlines()
        self.assertEqual([f"file ({path}, text, DEBUG)"], descriptions)
        self.assertIn("| c42 |", lines[0])
        self.assertIn("| - |", lines[1])

    def test_conversation_scoped_json_sink(self) -> None:
        path = self._tmp_dir / "c1.jsonl"
        setup_logging("INFO", [{"type": "file", "path": str(path), "serialize": True, "conversation_id": "c1"}])
        logger.bind(conversation_id="c1").info("kept")
        logger.bind(conversation_id="c2").info("filtered out")
        logger.remove()

        records = [json.loads(line) for line in path.read_text().splitlines()]
        self.assertEqual(["kept"], [r["record"]["message"] for r in records])

    def test_unknown_consumer_is_skipped(self) -> None:
        descriptions = setup_logging("INFO", [{"type": "carrier-pigeon"}, {"type": "console", "level": "ERROR"}])
        self.assertEqual(["console (stderr, ERROR)"], descriptions)


if __name__ == "__main__":
    unittest.main()
