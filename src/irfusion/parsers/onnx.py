from __future__ import annotations

import os
from typing import Any

import numpy as np
import onnx
from onnx import numpy_helper, shape_inference

from irfusion.ir import Graph, GraphValidator, Node, Tensor
from irfusion.parsers.base import Parser

_DTYPE_MAP = {
    onnx.TensorProto.FLOAT: "float32",
    onnx.TensorProto.UINT8: "uint8",
    onnx.TensorProto.INT8: "int8",
    onnx.TensorProto.UINT16: "uint16",
    onnx.TensorProto.INT16: "int16",
    onnx.TensorProto.INT32: "int32",
    onnx.TensorProto.INT64: "int64",
    onnx.TensorProto.BOOL: "bool",
    onnx.TensorProto.FLOAT16: "float16",
    onnx.TensorProto.DOUBLE: "float64",
    onnx.TensorProto.UINT32: "uint32",
    onnx.TensorProto.UINT64: "uint64",
    onnx.TensorProto.BFLOAT16: "bfloat16",
}


def _dtype_from_value_info(vi: onnx.ValueInfoProto) -> str | None:
    return _DTYPE_MAP.get(vi.type.tensor_type.elem_type)


def _shape_from_value_info(vi: onnx.ValueInfoProto) -> list[int] | None:
    out: list[int] = []
    for d in vi.type.tensor_type.shape.dim:
        # symbolic dims become 1
        out.append(int(d.dim_value) if d.HasField("dim_value") and d.dim_value > 0 else 1)
    return out or None


def _parse_attributes(node: onnx.NodeProto) -> dict[str, Any]:
    attrs: dict[str, Any] = {}
    for a in node.attribute:
        if a.type == onnx.AttributeProto.INT:
            attrs[a.name] = int(a.i)
        elif a.type == onnx.AttributeProto.FLOAT:
            attrs[a.name] = float(a.f)
        elif a.type == onnx.AttributeProto.STRING:
            attrs[a.name] = a.s.decode("utf-8", errors="ignore")
        elif a.type == onnx.AttributeProto.INTS:
            attrs[a.name] = [int(x) for x in a.ints]
        elif a.type == onnx.AttributeProto.FLOATS:
            attrs[a.name] = [float(x) for x in a.floats]
        elif a.type == onnx.AttributeProto.TENSOR:
            attrs[a.name] = numpy_helper.to_array(a.t).tolist()
    return attrs


class OnnxParser(Parser):
    """
    Parse an ONNX model into a Graph.

    Initializers become Constant nodes, graph inputs Parameter nodes and each
    graph output a Result node, so every tensor has a producer and graph
    outputs are visible to the fusion pass.
    """

    def parse(
        self, model_or_path: Any, *, validate: bool = True, infer_shapes: bool = True
    ) -> Graph:
        model = self._load_model(model_or_path)
        if infer_shapes:
            model = shape_inference.infer_shapes(model)
        g = Graph()

        init_names: set[str] = set()
        for init in model.graph.initializer:
            arr = np.asarray(numpy_helper.to_array(init))
            g.add_tensor(
                Tensor(
                    name=init.name,
                    dtype=str(arr.dtype.name),
                    shape=list(arr.shape) if arr.shape else [1],
                    metadata={"const": arr.tolist()},
                )
            )
            g.add_node(Node("Constant", [], [init.name], name=init.name))
            init_names.add(init.name)

        for inp in model.graph.input:
            if inp.name in init_names:
                continue
            self._add_value_info(g, inp)
            g.add_node(Node("Parameter", [], [inp.name], name=inp.name))
            g.inputs.append(inp.name)

        for vi in list(model.graph.value_info) + list(model.graph.output):
            self._add_value_info(g, vi)

        for n in model.graph.node:
            attrs = _parse_attributes(n)
            g.add_node(
                Node(
                    op_type=n.op_type,
                    # empty names mark omitted optional inputs
                    inputs=[name for name in n.input if name],
                    outputs=[name for name in n.output if name],
                    attributes=attrs,
                    name=n.name,
                )
            )
            for out_name in n.output:
                if out_name and out_name not in g.tensors:
                    g.add_tensor(Tensor(name=out_name, dtype="float32", shape=[1]))

        for out in model.graph.output:
            g.add_node(Node("Result", [out.name], [], name=f"{out.name}_result"))
            g.outputs.append(out.name)

        if validate:
            GraphValidator(g).validate()
        return g

    def _add_value_info(self, g: Graph, vi: onnx.ValueInfoProto) -> None:
        dtype = _dtype_from_value_info(vi) or "float32"
        shape = _shape_from_value_info(vi) or [1]
        t = g.get_tensor(vi.name)
        if t is None:
            g.add_tensor(Tensor(name=vi.name, dtype=dtype, shape=shape))
        else:
            # Update missing dtype/shape if needed
            t.dtype = t.dtype or dtype
            t.shape = t.shape or shape

    def _load_model(self, model_or_path: Any) -> onnx.ModelProto:
        if isinstance(model_or_path, onnx.ModelProto):
            return model_or_path
        if isinstance(model_or_path, (bytes, bytearray)):
            return onnx.load_model_from_string(bytes(model_or_path))
        if isinstance(model_or_path, (str, os.PathLike)):
            return onnx.load(os.fspath(model_or_path))
        raise TypeError("Unsupported model type for ONNX parser")
