from __future__ import annotations

import json
from pathlib import Path

import onnx
from onnx import TensorProto, helper
from typer.testing import CliRunner

from irfusion.cli.main import app

runner = CliRunner()


def _write_chain_model(path: Path) -> Path:
    # x -> Exp -> Relu -> y
    x_info = helper.make_tensor_value_info("x", TensorProto.FLOAT, [4])
    y_info = helper.make_tensor_value_info("y", TensorProto.FLOAT, [4])
    nodes = [
        helper.make_node("Exp", ["x"], ["h"]),
        helper.make_node("Relu", ["h"], ["y"]),
    ]
    model = helper.make_model(helper.make_graph(nodes, "chain", [x_info], [y_info]))
    onnx.save(model, str(path))
    return path


def test_optimize_without_fusion_keeps_ops(tmp_path: Path) -> None:
    model = _write_chain_model(tmp_path / "chain.onnx")
    result = runner.invoke(app, ["optimize", str(model)])
    assert result.exit_code == 0, result.output
    assert "after: 4 nodes" in result.output


def test_optimize_with_fusion_writes_report(tmp_path: Path) -> None:
    model = _write_chain_model(tmp_path / "chain.onnx")
    report = tmp_path / "report.json"
    result = runner.invoke(
        app, ["optimize", str(model), "--ir-based-fusion", "--output", str(report)]
    )
    assert result.exit_code == 0, result.output
    data = json.loads(report.read_text())
    assert data["before"]["num_nodes"] == 4
    assert data["after"]["op_counts"] == {"Matched_Pattern": 1, "Parameter": 1, "Result": 1}
    assert len(data["after"]["ir_based_fusion"]["fusions"]) == 1


def test_fusion_switch_reads_environment(tmp_path: Path) -> None:
    model = _write_chain_model(tmp_path / "chain.onnx")
    result = runner.invoke(
        app, ["optimize", str(model)], env={"IRFUSION_IR_BASED_FUSION": "1"}
    )
    assert result.exit_code == 0, result.output
    assert "Matched_Pattern: 1" in result.output


def test_missing_model_fails(tmp_path: Path) -> None:
    result = runner.invoke(app, ["optimize", str(tmp_path / "nope.onnx")])
    assert result.exit_code != 0
