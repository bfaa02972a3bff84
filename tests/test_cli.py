import asyncio
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from npmquality import __version__
from npmquality.cli import app
from npmquality.models.schemas import Estimation
from npmquality.storage.collection import JsonCollection
from npmquality.storage.stores import EstimationStore

from fakes import NOW


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = CliRunner()
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        self.env = {"NPMQUALITY_DATA_DIR": str(self.data_dir)}

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_version(self) -> None:
        result = self.runner.invoke(app, ["version"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn(__version__, result.output)

    def test_show_stored_estimation(self) -> None:
        store = EstimationStore(JsonCollection(self.data_dir, "packages"))
        estimation = Estimation(
            name="loadtest",
            created=NOW,
            last_updated=NOW,
            next_update=NOW,
            downloads=(0.9, 1.0),
            quality=0.9,
        )
        asyncio.run(store.save(estimation))

        with patch.dict(os.environ, self.env):
            result = self.runner.invoke(app, ["show", "loadtest"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("loadtest", result.output)
        self.assertIn("0.900", result.output)

    def test_show_missing(self) -> None:
        with patch.dict(os.environ, self.env):
            result = self.runner.invoke(app, ["show", "nope"])
        self.assertEqual(result.exit_code, 1)

    def test_run_batch_missing_worklist(self) -> None:
        with patch.dict(os.environ, self.env):
            result = self.runner.invoke(app, ["run-batch", str(self.data_dir / "missing.json")])
        self.assertEqual(result.exit_code, 1)

    def test_run_pending_with_nothing_pending(self) -> None:
        with patch.dict(os.environ, self.env):
            result = self.runner.invoke(app, ["run-pending"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Batch Summary", result.output)


if __name__ == "__main__":
    unittest.main()
