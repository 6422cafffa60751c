from __future__ import annotations

from irfusion.ir import Graph, Node, Tensor
from irfusion.ops import FUSED_OP_TYPE
from irfusion.optimizer import FusedNodeBuilder


def build_graph() -> tuple[Graph, dict[str, int]]:
    # e1, e2 parameters; A = Relu(e2); S = Add(e1, A) -> Result
    g = Graph()
    for name in ["e1", "e2", "a", "s"]:
        g.add_tensor(Tensor(name=name, dtype="float32", shape=[4]))
    ids = {
        "e1": g.add_node(Node("Parameter", [], ["e1"])),
        "e2": g.add_node(Node("Parameter", [], ["e2"])),
        "a": g.add_node(Node("Relu", ["e2"], ["a"])),
        "s": g.add_node(Node("Add", ["e1", "a"], ["s"])),
        "r": g.add_node(Node("Result", ["s"], [])),
    }
    g.outputs = ["s"]
    return g, ids


def test_fused_node_signature() -> None:
    g, ids = build_graph()
    fused = FusedNodeBuilder().build([ids["s"], ids["a"]], g)

    assert fused.op_type == FUSED_OP_TYPE
    assert fused.name == "fused_kernel_0"
    # seed inputs first
    assert fused.inputs == ["e1", "e2"]
    assert fused.outputs == ["s"]
    assert fused.attributes["members"] == ["Relu", "Add"]
    assert fused.metadata["member_ids"] == [ids["a"], ids["s"]]


def test_fused_program_joins_member_translations_in_order() -> None:
    g, ids = build_graph()
    fused = FusedNodeBuilder().build([ids["s"], ids["a"]], g)
    relu_ir, add_ir = fused.attributes["ir"].split("; ")
    assert relu_ir.startswith("output0[N0] = input0[N0].call(")
    assert add_ir == "output0[N0] = input0[N0] + input1[N0]"


def test_clean_graph_removes_members_and_insert_rewires() -> None:
    g, ids = build_graph()
    fused = FusedNodeBuilder().build([ids["s"], ids["a"]], g, clean_graph=True)
    assert ids["a"] not in g.nodes and ids["s"] not in g.nodes
    fused_id = g.add_node(fused)
    assert g.in_edges(ids["r"])[0].src == fused_id
    assert sorted(g.predecessors(fused_id)) == [ids["e1"], ids["e2"]]


def test_preview_build_leaves_graph_untouched() -> None:
    g, ids = build_graph()
    before = dict(g.nodes)
    fused = FusedNodeBuilder().build([ids["s"], ids["a"]], g, clean_graph=False)
    assert g.nodes == before
    assert fused.id == -1


def test_internal_tensor_read_outside_is_exported() -> None:
    g, ids = build_graph()
    g.add_tensor(Tensor(name="n", dtype="float32", shape=[4]))
    g.add_node(Node("Neg", ["a"], ["n"]))
    fused = FusedNodeBuilder().build([ids["s"], ids["a"]], g)
    assert fused.outputs == ["a", "s"]


def test_subgraph_snapshot() -> None:
    g, ids = build_graph()
    fused = FusedNodeBuilder().build([ids["s"], ids["a"]], g)
    sub = fused.metadata["subgraph"]
    assert [n.op_type for n in sub.ordered_nodes()] == ["Relu", "Add"]
    assert sub.inputs == ["e2", "e1"]
    assert sub.outputs == ["s"]


def test_names_are_numbered_per_builder() -> None:
    g, ids = build_graph()
    builder = FusedNodeBuilder(name_prefix="k")
    assert builder.build([ids["s"], ids["a"]], g, clean_graph=False).name == "k_0"
    assert builder.build([ids["s"], ids["a"]], g, clean_graph=False).name == "k_1"


def test_each_external_read_gets_its_own_input() -> None:
    # P -> {A, B} -> S; both A and B read p
    g = Graph()
    p = g.add_node(Node("Relu", ["x"], ["p"]))
    a = g.add_node(Node("Exp", ["p"], ["a"]))
    b = g.add_node(Node("Neg", ["p"], ["b"]))
    s = g.add_node(Node("Add", ["a", "b"], ["s"]))
    g.outputs = ["s"]

    fused = FusedNodeBuilder().build([s, a, b], g)
    assert fused.inputs == ["p", "p"]
    fused_id = g.add_node(fused)
    assert [e.dst for e in g.out_edges(p)] == [fused_id, fused_id]
