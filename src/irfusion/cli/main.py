from __future__ import annotations

import json
from pathlib import Path

import typer

from irfusion.flows.pipeline import fusion_flow
from irfusion.ir import ValidationError, summarize_graph
from irfusion.optimizer import build_default_pipeline
from irfusion.parsers.onnx import OnnxParser

app = typer.Typer(help="irfusion CLI")

IR_FUSION_ENVVAR = "IRFUSION_IR_BASED_FUSION"


def _echo_counts(title: str, summary: dict) -> None:
    typer.echo(f"{title}: {summary['num_nodes']} nodes")
    for op_type, count in summary["op_counts"].items():
        typer.echo(f"  {op_type}: {count}")


@app.command()
def optimize(
    model: Path = typer.Argument(..., exists=True, dir_okay=False, help="ONNX model file"),
    ir_based_fusion: bool = typer.Option(
        False,
        "--ir-based-fusion/--no-ir-based-fusion",
        envvar=IR_FUSION_ENVVAR,
        help="Fuse operator clusters into Matched_Pattern nodes",
    ),
    output: Path | None = typer.Option(None, help="Write a JSON report to this file"),
) -> None:
    """
    Parse an ONNX model, run the graph passes and print op counts.
    """
    try:
        graph = OnnxParser().parse(str(model))
        before = summarize_graph(graph)
        build_default_pipeline(ir_based_fusion=ir_based_fusion).run(graph)
    except ValidationError as e:
        typer.echo(f"error [{e.code}]: {e}", err=True)
        raise typer.Exit(code=1) from e
    after = summarize_graph(graph)

    _echo_counts("before", before)
    _echo_counts("after", after)
    if output is not None:
        output.write_text(json.dumps({"before": before, "after": after}, indent=2))
        typer.echo(f"Report written to: {output}")


@app.command()
def run(model_uri: str = typer.Argument(..., help="Local path or S3 URI, e.g. s3://bucket/model.onnx"),
        output_dir: str = typer.Option("./outputs", help="Directory to write results"),
        ir_based_fusion: bool = typer.Option(
            True, "--ir-based-fusion/--no-ir-based-fusion", envvar=IR_FUSION_ENVVAR
        )) -> None:
    """
    Run the Prefect flow on a model.
    """
    result_path = fusion_flow(
        model_uri=model_uri, output_dir=output_dir, ir_based_fusion=ir_based_fusion
    )
    typer.echo(f"Results written to: {result_path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
