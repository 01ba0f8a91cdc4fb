"""Tests for the command line interface and file loading."""

import json

import pytest

from spreadline.cli import main
from spreadline.loader import read_groups, read_rows
from spreadline.models import ConfigurationError, DataShapeError

ROWS = [
    {"source": "B", "target": "A", "time": "2020", "weight": 2},
    {"source": "A", "target": "C", "time": "2021", "weight": 1},
    {"source": "B", "target": "A", "time": "2022", "weight": 1},
]


@pytest.fixture()
def topology_file(tmp_path):
    path = tmp_path / "topology.json"
    path.write_text(json.dumps(ROWS))
    return path


class TestReadRows:
    def test_json(self, topology_file):
        assert read_rows(topology_file) == ROWS

    def test_csv(self, tmp_path):
        path = tmp_path / "topology.csv"
        path.write_text("source,target,time,weight\nB,A,2020,2\n")
        assert read_rows(path) == [{"source": "B", "target": "A", "time": "2020", "weight": "2"}]

    def test_unsupported_suffix(self, tmp_path):
        with pytest.raises(ConfigurationError):
            read_rows(tmp_path / "topology.parquet")

    def test_json_must_be_list(self, tmp_path):
        path = tmp_path / "rows.json"
        path.write_text('{"source": "A"}')
        with pytest.raises(DataShapeError):
            read_rows(path)

    def test_groups(self, tmp_path):
        path = tmp_path / "groups.json"
        path.write_text(json.dumps({"2020": [[], ["B"], ["A"], [], []]}))
        assert read_groups(path) == {"2020": [[], ["B"], ["A"], [], []]}

    def test_groups_need_five_tiers(self, tmp_path):
        path = tmp_path / "groups.json"
        path.write_text(json.dumps({"2020": [["B"], ["A"]]}))
        with pytest.raises(DataShapeError):
            read_groups(path)


class TestMain:
    def test_layout_writes_json(self, topology_file, tmp_path):
        output = tmp_path / "layout.json"
        code = main([
            "layout", str(topology_file), "--ego", "A", "--delta", "year", "--format", "%Y",
            "--config", str(tmp_path / "missing.yaml"), "-o", str(output),
        ])
        assert code == 0
        data = json.loads(output.read_text())
        assert data["ego"] == "A"
        assert [s["name"] for s in data["storylines"]] == ["B", "A", "C"]
        assert len(data["blocks"]) == 3

    def test_layout_to_stdout(self, topology_file, capsys):
        code = main(["layout", str(topology_file), "--ego", "A", "--delta", "year", "--format", "%Y",
                     "--minimize", "wiggles"])
        assert code == 0
        assert json.loads(capsys.readouterr().out)["timeLabels"][0]["label"] == "2020"

    def test_network_summary(self, topology_file, capsys):
        code = main(["network", str(topology_file), "--ego", "A", "--delta", "year", "--format", "%Y"])
        assert code == 0
        out = capsys.readouterr().out
        assert "3 entities" in out
        assert "2020: session 1" in out

    def test_error_exit_code(self, topology_file):
        code = main(["layout", str(topology_file), "--ego", "A", "--delta", "decade", "--format", "%Y"])
        assert code == 2

    def test_no_command(self, capsys):
        assert main([]) == 1
