from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any, cast

import boto3
from prefect import flow, get_run_logger, task

from irfusion.ir import Graph, summarize_graph
from irfusion.optimizer import build_default_pipeline
from irfusion.parsers.onnx import OnnxParser


@task
def fetch_model(model_uri: str) -> Path:
    """
    Resolve a model URI to a local file. s3://bucket/key URIs are downloaded
    to a temporary file and need AWS credentials in the environment.
    """
    logger = get_run_logger()
    if not model_uri.startswith("s3://"):
        path = Path(model_uri)
        if not path.is_file():
            raise ValueError(f"Model file not found: {model_uri}")
        return path
    _, rest = model_uri.split("s3://", 1)
    bucket, key = rest.split("/", 1)
    s3 = boto3.client("s3")
    tmp = Path(tempfile.mkstemp(prefix="irfusion_model_", suffix=Path(key).suffix)[1])
    s3.download_file(bucket, key, str(tmp))
    logger.info(f"Downloaded {model_uri} to {tmp}")
    return tmp


@task
def parse_model(local_path: Path) -> Graph:
    logger = get_run_logger()
    logger.info(f"Parsing model at {local_path}")
    if local_path.suffix.lower() != ".onnx":
        raise ValueError(f"Unsupported model format: {local_path.suffix}")
    return OnnxParser().parse(str(local_path))


@task
def fuse_graph(graph: Graph, ir_based_fusion: bool) -> Graph:
    logger = get_run_logger()
    logger.info(f"Running graph passes (ir_based_fusion={ir_based_fusion})")
    return build_default_pipeline(ir_based_fusion=ir_based_fusion).run(graph)


@task
def export_report(output_dir: str, before: dict[str, Any], graph: Graph) -> str:
    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    report_file = out_path / "report.json"
    report = {"before": before, "after": summarize_graph(graph)}
    report_file.write_text(json.dumps(report, indent=2))
    return str(report_file)


@flow(name="irfusion-ir-based-fusion")
def fusion_flow(model_uri: str, output_dir: str, ir_based_fusion: bool = True) -> str:
    """
    Orchestrates: fetch → parse → fuse → export report
    """
    path = fetch_model(model_uri)
    graph = parse_model(path)
    before = summarize_graph(graph)
    fused = fuse_graph(graph, ir_based_fusion)
    out = export_report(output_dir, before, fused)
    return cast(str, out)
