from __future__ import annotations

import numpy as np
import onnx
import pytest
from onnx import TensorProto, helper

from irfusion.ir import GraphValidator
from irfusion.ops import FUSED_OP_TYPE
from irfusion.optimizer import IRBasedFusionPass
from irfusion.parsers.onnx import OnnxParser


def _op_types(ir) -> list[str]:
    return [n.op_type for n in ir.ordered_nodes()]


def test_parse_add_graph_with_initializer_consts() -> None:
    # a and b as initializers, c as graph output
    a = helper.make_tensor("a", TensorProto.FLOAT, [2, 2], [1.0, -2.0, 3.0, -4.0])
    b = helper.make_tensor("b", TensorProto.FLOAT, [2, 2], [5.0, 6.0, 7.0, 8.0])
    c_info = helper.make_tensor_value_info("c", TensorProto.FLOAT, [2, 2])

    node = helper.make_node("Add", inputs=["a", "b"], outputs=["c"])
    graph = helper.make_graph(
        nodes=[node],
        name="add_graph",
        inputs=[],  # no graph inputs; initializers only
        outputs=[c_info],
        initializer=[a, b],
    )
    model = helper.make_model(graph, producer_name="test")

    ir = OnnxParser().parse(model)
    assert ir.tensors["a"].metadata.get("const") == [[1.0, -2.0], [3.0, -4.0]]
    assert ir.tensors["b"].metadata.get("const") == [[5.0, 6.0], [7.0, 8.0]]
    assert _op_types(ir) == ["Constant", "Constant", "Add", "Result"]
    assert ir.outputs == ["c"]
    GraphValidator(ir).validate()


def test_parse_with_graph_input_and_output() -> None:
    x_info = helper.make_tensor_value_info("x", TensorProto.FLOAT, [1, 3, 32, 32])
    y_info = helper.make_tensor_value_info("y", TensorProto.FLOAT, [1, 3, 32, 32])
    node = helper.make_node("Relu", inputs=["x"], outputs=["y"], name="relu0")
    graph = helper.make_graph([node], "relu_graph", [x_info], [y_info])
    model = helper.make_model(graph)

    ir = OnnxParser().parse(model)
    assert ir.inputs == ["x"]
    assert ir.outputs == ["y"]
    param, relu, result = ir.ordered_nodes()
    assert (param.op_type, relu.op_type, result.op_type) == ("Parameter", "Relu", "Result")
    assert relu.name == "relu0"
    assert ir.in_edges(relu.id)[0].src == param.id
    assert ir.in_edges(result.id)[0].src == relu.id


def test_parse_attributes() -> None:
    x_info = helper.make_tensor_value_info("x", TensorProto.FLOAT, [2, 3, 4])
    y_info = helper.make_tensor_value_info("y", TensorProto.FLOAT, [3, 4, 2])
    node = helper.make_node("Transpose", ["x"], ["y"], perm=[1, 2, 0])
    model = helper.make_model(helper.make_graph([node], "t", [x_info], [y_info]))

    ir = OnnxParser().parse(model)
    (transpose,) = [n for n in ir.nodes.values() if n.op_type == "Transpose"]
    assert transpose.attributes == {"perm": [1, 2, 0]}


def test_parse_infers_internal_tensor_shapes() -> None:
    # x (2,3,4) + b (1,3,1) -> c; Relu(c) -> y. Only y is graph output.
    x_info = helper.make_tensor_value_info("x", TensorProto.FLOAT, [2, 3, 4])
    b_info = helper.make_tensor_value_info("b", TensorProto.FLOAT, [1, 3, 1])
    y_info = helper.make_tensor_value_info("y", TensorProto.FLOAT, [2, 3, 4])
    add = helper.make_node("Add", ["x", "b"], ["c"])
    relu = helper.make_node("Relu", ["c"], ["y"])
    graph = helper.make_graph([add, relu], "chain", [x_info, b_info], [y_info])
    model = helper.make_model(graph)

    ir = OnnxParser().parse(model)
    assert ir.tensors["c"].shape == [2, 3, 4]
    GraphValidator(ir).validate()


def test_parse_rejects_unknown_model_type() -> None:
    with pytest.raises(TypeError):
        OnnxParser().parse(42)


def test_parsed_model_fuses_elementwise_tail() -> None:
    # x -> MatMul(w) -> Add(bias) -> Relu -> Softmax -> y
    x_info = helper.make_tensor_value_info("x", TensorProto.FLOAT, [2, 4])
    y_info = helper.make_tensor_value_info("y", TensorProto.FLOAT, [2, 3])
    w = helper.make_tensor(
        "w", TensorProto.FLOAT, [4, 3], np.ones((4, 3), dtype=np.float32).flatten().tolist()
    )
    bias = helper.make_tensor("bias", TensorProto.FLOAT, [3], [0.0, 0.0, 0.0])
    nodes = [
        helper.make_node("MatMul", ["x", "w"], ["h"]),
        helper.make_node("Add", ["h", "bias"], ["h2"]),
        helper.make_node("Relu", ["h2"], ["h3"]),
        helper.make_node("Softmax", ["h3"], ["y"], axis=1),
    ]
    model = helper.make_model(
        helper.make_graph(nodes, "mlp", [x_info], [y_info], initializer=[w, bias])
    )
    onnx.checker.check_model(model)

    ir = OnnxParser().parse(model)
    IRBasedFusionPass(enabled=True).run(ir)

    # Softmax's mediate stages keep Relu as a boundary; MatMul accumulates.
    # Relu's closure absorbs the bias Add and stops at MatMul.
    assert _op_types(ir) == [
        "Constant",
        "Constant",
        "Parameter",
        "MatMul",
        FUSED_OP_TYPE,
        "Softmax",
        "Result",
    ]
    (fused,) = [n for n in ir.nodes.values() if n.op_type == FUSED_OP_TYPE]
    assert fused.attributes["members"] == ["Add", "Relu"]
    assert fused.inputs == ["h", "bias"]
    assert fused.outputs == ["h3"]
