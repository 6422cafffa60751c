"""
Per-op translation into Antares-style tensor expressions.

Translations are consumed as opaque strings by the fusion pass; only the
markers they contain matter there. Ops with no registered translator
(including tensor and output ops) translate to the empty string.
"""

from __future__ import annotations

from collections.abc import Callable

from irfusion.ir.graph import Graph, Node
from irfusion.ops.capabilities import FUSED_OP_TYPE

Translator = Callable[[Graph, Node], str]

_REGISTRY: dict[str, Translator] = {}


def register_translation(*op_types: str) -> Callable[[Translator], Translator]:
    def wrapper(fn: Translator) -> Translator:
        for op_type in op_types:
            _REGISTRY[op_type] = fn
        return fn

    return wrapper


def get_translation(graph: Graph, node: Node) -> str:
    fn = _REGISTRY.get(node.op_type)
    if fn is None:
        return ""
    return fn(graph, node)


def _rank(graph: Graph, name: str) -> int:
    t = graph.get_tensor(name)
    if t is None or not t.shape:
        return 1
    return len(t.shape)


def _out_rank(graph: Graph, node: Node) -> int:
    return _rank(graph, node.outputs[0]) if node.outputs else 1


def _index(names: list[str]) -> str:
    return "[" + ", ".join(names) + "]"


def _axes(rank: int, prefix: str = "N") -> list[str]:
    return [f"{prefix}{i}" for i in range(rank)]


def _normalize_axes(axes: list[int] | None, rank: int) -> list[int]:
    if not axes:
        return list(range(rank))
    return sorted(a + rank if a < 0 else a for a in axes)


_UNARY_CALLS = {
    "Exp": "exp",
    "Log": "log",
    "Tanh": "tanh",
    "Sigmoid": "sigmoid",
    "Sqrt": "sqrt",
    "Abs": "abs",
    "Erf": "erf",
}


@register_translation("Relu", "Neg", "Cast", *_UNARY_CALLS)
def translate_unary(graph: Graph, node: Node) -> str:
    idx = _index(_axes(_out_rank(graph, node)))
    x = f"input0{idx}"
    if node.op_type == "Relu":
        expr = f'{x}.call("max", [const(0).cast({x}.dtype())])'
    elif node.op_type == "Neg":
        expr = f"-{x}"
    elif node.op_type == "Cast":
        expr = f'{x}.cast("{node.attributes.get("to", "float32")}")'
    else:
        expr = f'{x}.call("{_UNARY_CALLS[node.op_type]}")'
    return f"output0{idx} = {expr}"


_BINARY_OPS = {"Add": "+", "Sub": "-", "Mul": "*", "Div": "/"}
_BINARY_CALLS = {"Pow": "pow", "Max": "max", "Min": "min"}


@register_translation(*_BINARY_OPS, *_BINARY_CALLS)
def translate_binary(graph: Graph, node: Node) -> str:
    idx = _index(_axes(_out_rank(graph, node)))
    if node.op_type in _BINARY_OPS:
        expr = f"input0{idx} {_BINARY_OPS[node.op_type]} input1{idx}"
    else:
        expr = f'input0{idx}.call("{_BINARY_CALLS[node.op_type]}", [input1{idx}])'
    return f"output0{idx} = {expr}"


@register_translation("MatMul")
def translate_matmul(graph: Graph, node: Node) -> str:
    batch = _axes(max(_out_rank(graph, node) - 2, 0), prefix="B")
    a = batch + ["N", "K"]
    b = batch + ["K", "M"]
    out = batch + ["N", "M"]
    return f"output0{_index(out)} +=! input0{_index(a)} * input1{_index(b)}"


@register_translation("Gemm")
def translate_gemm(graph: Graph, node: Node) -> str:
    a = ["K", "N"] if node.attributes.get("transA") else ["N", "K"]
    b = ["M", "K"] if node.attributes.get("transB") else ["K", "M"]
    product = f"input0{_index(a)} * input1{_index(b)}"
    if len(node.inputs) < 3:
        return f"output0[N, M] +=! {product}"
    return f"mediate0[N, M] +=! {product}; output0[N, M] = mediate0[N, M] + input2[M]"


def _reduce_indices(graph: Graph, node: Node) -> tuple[list[str], list[str], list[int]]:
    rank = _rank(graph, node.inputs[0]) if node.inputs else 1
    axes = _normalize_axes(node.attributes.get("axes"), rank)
    keepdims = bool(node.attributes.get("keepdims", 1))
    in_idx = [f"R{i}" if i in axes else f"N{i}" for i in range(rank)]
    out_idx: list[str] = []
    for i in range(rank):
        if i not in axes:
            out_idx.append(f"N{i}")
        elif keepdims:
            out_idx.append("0")
    return in_idx, out_idx or ["0"], axes


@register_translation("ReduceSum", "ReduceMax")
def translate_reduce(graph: Graph, node: Node) -> str:
    in_idx, out_idx, _ = _reduce_indices(graph, node)
    op = "+=!" if node.op_type == "ReduceSum" else ">=!"
    return f"output0{_index(out_idx)} {op} input0{_index(in_idx)}"


@register_translation("ReduceMean")
def translate_reduce_mean(graph: Graph, node: Node) -> str:
    in_idx, out_idx, axes = _reduce_indices(graph, node)
    t = graph.get_tensor(node.inputs[0]) if node.inputs else None
    count = 1
    if t is not None and t.shape:
        for a in axes:
            count *= t.shape[a]
    out = _index(out_idx)
    return (
        f"mediate0{out} +=! input0{_index(in_idx)}; "
        f"output0{out} = mediate0{out} / const({count}).cast(mediate0{out}.dtype())"
    )


@register_translation("Softmax")
def translate_softmax(graph: Graph, node: Node) -> str:
    rank = _out_rank(graph, node)
    axis = node.attributes.get("axis", -1)
    if axis < 0:
        axis += rank
    full = _index(_axes(rank))
    reduced = _index([f"R{i}" if i == axis else f"N{i}" for i in range(rank)])
    outer = _index([f"N{i}" for i in range(rank) if i != axis] or ["0"])
    return "; ".join(
        [
            f"mediate0{outer} >=! input0{reduced}",
            f'mediate1{full} = (input0{full} - mediate0{outer}).call("exp")',
            f"mediate2{outer} +=! mediate1{reduced}",
            f"output0{full} = mediate1{full} / mediate2{outer}",
        ]
    )


@register_translation("Transpose")
def translate_transpose(graph: Graph, node: Node) -> str:
    rank = _rank(graph, node.inputs[0]) if node.inputs else 1
    src = _axes(rank)
    perm = node.attributes.get("perm") or list(reversed(range(rank)))
    dst = [src[p] for p in perm]
    return f"output0{_index(dst)} =. input0{_index(src)}"


@register_translation("Slice")
def translate_slice(graph: Graph, node: Node) -> str:
    idx = _index(_axes(_out_rank(graph, node)))
    return f"output0{idx} =. input0{idx}"


@register_translation("Gather")
def translate_gather(graph: Graph, node: Node) -> str:
    rank = _out_rank(graph, node)
    out = _axes(rank)
    axis = node.attributes.get("axis", 0)
    src = list(out)
    if 0 <= axis < rank:
        src[axis] = f"input1[{out[axis]}]"
    return f"output0{_index(out)} =. input0{_index(src)}"


@register_translation("Reshape", "Flatten", "Squeeze", "Unsqueeze", "Identity")
def translate_reshape(graph: Graph, node: Node) -> str:
    out = _index(_axes(_out_rank(graph, node)))
    src = _index(_axes(_rank(graph, node.inputs[0]) if node.inputs else 1, prefix="S"))
    return f"output0{out} = input0{src} where S <- N"


@register_translation(FUSED_OP_TYPE)
def translate_fused(graph: Graph, node: Node) -> str:
    return str(node.attributes.get("ir", ""))
