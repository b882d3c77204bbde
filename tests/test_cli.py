# =============================================================================
# MATERIAL VARIANCE ENGINE - COMMAND LINE TESTS
# =============================================================================

import json
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import main


class TestCli:
    """Tests for the main.py entry point."""

    def test_run_text(self, data_dir, capsys):
        assert main(["run", "--period", "2025-06", "--data", str(data_dir)]) == 0
        out = capsys.readouterr().out
        assert "PERIOD TOTALS" in out
        assert "DELAYED POSTINGS (3)" in out
        assert "M9" in out

    def test_run_json(self, data_dir, capsys):
        code = main(["run", "--period", "2025-06", "--data", str(data_dir),
                     "--dept-mode", "list", "--dept", "Press Shop", "--json"])
        assert code == 0
        bundle = json.loads(capsys.readouterr().out)
        assert bundle["filters"]["department"] == "Press Shop"
        assert [r["department"] for r in bundle["department_summary"]] == ["Press Shop"]

    def test_validate(self, data_dir, capsys):
        assert main(["validate", "--period", "2025-06", "--data", str(data_dir)]) == 0
        assert "OVERALL: PASSED" in capsys.readouterr().out

    def test_list_mode_without_name(self, data_dir):
        assert main(["run", "--period", "2025-06", "--data", str(data_dir), "--dept-mode", "list"]) == 1

    def test_missing_data_dir(self, tmp_path):
        assert main(["run", "--period", "2025-06", "--data", str(tmp_path / "none")]) == 1

    def test_bad_settings(self, tmp_path, data_dir):
        path = tmp_path / "bad.yaml"
        path.write_text("log_level: LOUD\n")
        assert main(["--config", str(path), "run", "--period", "2025-06", "--data", str(data_dir)]) == 2
