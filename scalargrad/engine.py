"""
ScalarGrad Engine: Scalar-Value Reverse-Mode Autodiff
=====================================================

Every arithmetic or activation operation applied to a Value records a new
node in a directed acyclic computation graph. Calling backward() on a
terminal node (usually the loss) walks that graph in reverse topological
order and applies the chain rule, accumulating d(root)/d(node) into every
node's .grad.

Nodes do not carry closures. Each node stores:
1. An Op tag naming the operation that produced it
2. Its ordered operands
3. A snapshot of the operand values taken at construction time
4. The constant argument of the op, if any (the exponent of pow)

The backward pass dispatches on the tag through _BACKWARD_RULES. Because the
rules only read the snapshot, a parameter that is updated in place after the
forward pass cannot corrupt the gradients of a graph that was already built.
"""

from __future__ import annotations
import math
from enum import Enum
import numpy as np
from typing import Union, Tuple, Set, List, Callable, Dict, Optional

from .errors import DomainError


# Type alias for numeric inputs
Numeric = Union[int, float, np.floating, np.integer]


class Op(str, Enum):
    """Operation tags. Used for dispatch in the backward pass and for display."""

    LEAF = ''
    ADD = '+'
    SUB = '-'
    MUL = '*'
    DIV = '/'
    POW = '**'
    LOG = 'log'
    EXP = 'exp'
    SIN = 'sin'
    COS = 'cos'
    RELU = 'relu'
    SIGMOID = 'sigmoid'
    TANH = 'tanh'


class Value:
    """
    A scalar value that tracks its computational history for automatic differentiation.

    Every Value knows:
    1. Its data (the forward-computed number)
    2. Its gradient (derivative of the root with respect to this value)
    3. Its operands (the Values that produced it, in order)
    4. The operation that produced it

    A Value with no operands is a leaf: an input, a constant or a trainable
    parameter. Leaves are the only nodes meant to outlive a single
    forward/backward cycle.

    Attributes:
        data: The scalar value stored in this node.
        grad: The gradient of the final output with respect to this value.
        label: Optional name for debugging and visualization.

    Example:
        >>> a = Value(2.0, label='a')
        >>> b = Value(3.0, label='b')
        >>> c = a * b + a
        >>> c.backward()
        >>> print(a.grad)  # dc/da = b + 1 = 4.0
        4.0
        >>> print(b.grad)  # dc/db = a = 2.0
        2.0
    """

    __slots__ = ('data', 'grad', '_prev', '_op', '_saved', '_arg', 'label')

    def __init__(
        self,
        data: Numeric,
        _children: Tuple[Value, ...] = (),
        _op: Op = Op.LEAF,
        label: str = '',
        _arg: Optional[float] = None
    ) -> None:
        """
        Initialize a Value node.

        Args:
            data: The scalar value to store.
            _children: Operand nodes in the computation graph (internal use).
            _op: The operation that produced this node (internal use).
            label: Optional name for debugging.
            _arg: Constant argument of the operation (internal use).

        Raises:
            TypeError: If data is not a numeric type.
        """
        if not isinstance(data, (int, float, np.floating, np.integer)):
            raise TypeError(
                f"Value data must be numeric, got {type(data).__name__}"
            )

        self.data: float = float(data)
        self.grad: float = 0.0
        self._prev: Tuple[Value, ...] = tuple(_children)
        self._op: Op = _op
        # Operand values frozen at construction; backward rules read only these
        self._saved: Tuple[float, ...] = tuple(c.data for c in self._prev)
        self._arg: Optional[float] = _arg
        self.label: str = label

    def __repr__(self) -> str:
        """String representation showing data and gradient."""
        if self.label:
            return f"Value({self.label}={self.data:.4f}, grad={self.grad:.4f})"
        return f"Value(data={self.data:.4f}, grad={self.grad:.4f})"

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def value(self) -> float:
        """Alias of data."""
        return self.data

    @value.setter
    def value(self, v: float) -> None:
        self.data = float(v)

    @property
    def gradient(self) -> float:
        """Alias of grad."""
        return self.grad

    @gradient.setter
    def gradient(self, g: float) -> None:
        self.grad = float(g)

    @property
    def operands(self) -> Tuple[Value, ...]:
        """The ordered operands that produced this node."""
        return self._prev

    @property
    def op(self) -> str:
        """Diagnostic label of the producing operation ('' for leaves)."""
        if self._op is Op.POW:
            return f'**{self._arg:g}'
        return self._op.value

    @property
    def is_leaf(self) -> bool:
        return not self._prev

    # =========================================================================
    # Arithmetic Operations
    # =========================================================================

    @staticmethod
    def _lift(other: Union[Value, Numeric]) -> Value:
        return other if isinstance(other, Value) else Value(other)

    def __add__(self, other: Union[Value, Numeric]) -> Value:
        """
        Addition: out = self + other

        Local derivatives:
            d(out)/d(self) = 1
            d(out)/d(other) = 1
        """
        other = self._lift(other)
        return Value(self.data + other.data, (self, other), Op.ADD)

    def __radd__(self, other: Numeric) -> Value:
        """Handle numeric + Value."""
        return self._lift(other) + self

    def __sub__(self, other: Union[Value, Numeric]) -> Value:
        """
        Subtraction: out = self - other

        Local derivatives:
            d(out)/d(self) = 1
            d(out)/d(other) = -1
        """
        other = self._lift(other)
        return Value(self.data - other.data, (self, other), Op.SUB)

    def __rsub__(self, other: Numeric) -> Value:
        """Handle numeric - Value."""
        return self._lift(other) - self

    def __neg__(self) -> Value:
        """Negation: -self."""
        return self * -1

    def __mul__(self, other: Union[Value, Numeric]) -> Value:
        """
        Multiplication: out = self * other

        Local derivatives:
            d(out)/d(self) = other.data
            d(out)/d(other) = self.data
        """
        other = self._lift(other)
        return Value(self.data * other.data, (self, other), Op.MUL)

    def __rmul__(self, other: Numeric) -> Value:
        """Handle numeric * Value."""
        return self._lift(other) * self

    def __truediv__(self, other: Union[Value, Numeric]) -> Value:
        """
        Division: out = self / other

        Local derivatives:
            d(out)/d(self) = 1 / other.data
            d(out)/d(other) = -self.data / other.data^2

        Raises:
            ZeroDivisionError: If other.data is zero.
        """
        other = self._lift(other)
        return Value(self.data / other.data, (self, other), Op.DIV)

    def __rtruediv__(self, other: Numeric) -> Value:
        """Handle numeric / Value."""
        return self._lift(other) / self

    def __pow__(self, n: Union[int, float]) -> Value:
        """
        Power: out = self^n (where n is a constant, not a Value)

        Local derivative:
            d(out)/d(self) = n * self^(n-1)

        Args:
            n: The exponent (must be numeric, not Value).

        Raises:
            TypeError: If n is a Value (not supported).
            DomainError: If the result is not a real number (negative base
                with a fractional exponent, or zero to a negative power).
        """
        if isinstance(n, Value):
            raise TypeError(
                "Power with Value exponent not supported. "
                "Use (n * self.log()).exp() instead."
            )
        if self.data < 0 and not float(n).is_integer():
            raise DomainError(
                f"pow undefined for negative base {self.data} with fractional exponent {n}"
            )
        if self.data == 0 and n < 0:
            raise DomainError(f"pow undefined for zero base with negative exponent {n}")

        return Value(self.data ** n, (self,), Op.POW, _arg=n)

    # =========================================================================
    # Transcendental Functions
    # =========================================================================

    def log(self) -> Value:
        """
        Natural logarithm: out = ln(self)

        Local derivative:
            d(ln(x))/dx = 1/x

        Raises:
            DomainError: If self.data <= 0. No node is created in that case.
        """
        if self.data <= 0:
            raise DomainError(f"log undefined for non-positive values: {self.data}")

        return Value(math.log(self.data), (self,), Op.LOG)

    def exp(self) -> Value:
        """
        Exponential: out = e^self

        Local derivative:
            d(e^x)/dx = e^x

        Raises:
            OverflowError: If the result does not fit in a double.
        """
        return Value(math.exp(self.data), (self,), Op.EXP)

    def sin(self) -> Value:
        """Sine: d(sin(x))/dx = cos(x)."""
        return Value(math.sin(self.data), (self,), Op.SIN)

    def cos(self) -> Value:
        """Cosine: d(cos(x))/dx = -sin(x)."""
        return Value(math.cos(self.data), (self,), Op.COS)

    # =========================================================================
    # Activation Functions
    # =========================================================================

    def relu(self) -> Value:
        """
        Rectified Linear Unit: out = max(0, self)

        Local derivative:
            d(relu(x))/dx = 1 if x > 0 else 0
        """
        return Value(max(0.0, self.data), (self,), Op.RELU)

    def sigmoid(self) -> Value:
        """
        Sigmoid activation: out = 1 / (1 + e^(-self))

        Local derivative:
            d(sigmoid(x))/dx = sigmoid(x) * (1 - sigmoid(x))
        """
        x = self.data
        if x >= 0:
            s = 1.0 / (1.0 + math.exp(-x))
        else:
            # e^x form for negative inputs, so exp() never overflows
            e = math.exp(x)
            s = e / (1.0 + e)
        return Value(s, (self,), Op.SIGMOID)

    def tanh(self) -> Value:
        """
        Hyperbolic tangent activation: out = tanh(self)

        Local derivative:
            d(tanh(x))/dx = 1 - tanh(x)^2
        """
        return Value(math.tanh(self.data), (self,), Op.TANH)

    # =========================================================================
    # Backpropagation
    # =========================================================================

    def _backward(self) -> None:
        """Push this node's gradient into its operands using its op's rule."""
        rule = _BACKWARD_RULES.get(self._op)
        if rule is not None:
            rule(self)

    def backward(self) -> None:
        """
        Compute gradients for all nodes in the computation graph.

        The algorithm:
        1. Build a topological ordering of the graph (operands before users)
        2. Reset the gradients of intermediate (non-leaf) nodes in the graph
        3. Set this node's gradient to 1.0 (d(self)/d(self) = 1)
        4. Walk the ordering in reverse, calling each node's backward rule

        Contributions are added with +=, so a node that feeds several
        consumers receives the sum over all paths.

        Note: Leaf gradients are never reset here, so calling backward()
        multiple times will ACCUMULATE into inputs and parameters. Call
        zero_grad() on the parameters first if you want fresh gradients.

        Example:
            >>> x = Value(2.0)
            >>> y = x ** 2 + 3 * x
            >>> y.backward()
            >>> print(x.grad)  # dy/dx = 2x + 3 = 7.0
            7.0
        """
        topo = topological_sort(self)

        # Intermediate grads belong to a single pass
        for node in topo:
            if node._prev:
                node.grad = 0.0

        # Seed gradient: d(self)/d(self) = 1
        self.grad = 1.0

        for node in reversed(topo):
            node._backward()

    def zero_grad(self) -> None:
        """Reset gradient to zero."""
        self.grad = 0.0

    # =========================================================================
    # Utility Methods
    # =========================================================================

    @staticmethod
    def zero_grad_all(values: List[Value]) -> None:
        """
        Zero gradients for a list of Values.

        Args:
            values: List of Value objects to zero.
        """
        for v in values:
            v.grad = 0.0


# =============================================================================
# Backward Rules
# =============================================================================
# Each rule receives the output node. g is its fully accumulated gradient;
# operand values come from the construction-time snapshot.

def _add_backward(out: Value) -> None:
    a, b = out._prev
    a.grad += out.grad
    b.grad += out.grad


def _sub_backward(out: Value) -> None:
    a, b = out._prev
    a.grad += out.grad
    b.grad -= out.grad


def _mul_backward(out: Value) -> None:
    a, b = out._prev
    av, bv = out._saved
    a.grad += bv * out.grad
    b.grad += av * out.grad


def _div_backward(out: Value) -> None:
    a, b = out._prev
    av, bv = out._saved
    a.grad += out.grad / bv
    b.grad += -out.grad * av / (bv * bv)


def _pow_backward(out: Value) -> None:
    (a,) = out._prev
    (av,) = out._saved
    n = out._arg
    if n == 0:
        return
    if av == 0 and n < 1:
        # Slope is unbounded at zero for 0 < n < 1
        a.grad += math.copysign(math.inf, n) * out.grad
        return
    a.grad += n * (av ** (n - 1)) * out.grad


def _log_backward(out: Value) -> None:
    (a,) = out._prev
    a.grad += out.grad / out._saved[0]


def _exp_backward(out: Value) -> None:
    (a,) = out._prev
    a.grad += out.data * out.grad


def _sin_backward(out: Value) -> None:
    (a,) = out._prev
    a.grad += math.cos(out._saved[0]) * out.grad


def _cos_backward(out: Value) -> None:
    (a,) = out._prev
    a.grad += -math.sin(out._saved[0]) * out.grad


def _relu_backward(out: Value) -> None:
    (a,) = out._prev
    a.grad += (1.0 if out._saved[0] > 0 else 0.0) * out.grad


def _sigmoid_backward(out: Value) -> None:
    (a,) = out._prev
    s = out.data
    a.grad += s * (1 - s) * out.grad


def _tanh_backward(out: Value) -> None:
    (a,) = out._prev
    t = out.data
    a.grad += (1 - t * t) * out.grad


_BACKWARD_RULES: Dict[Op, Callable[[Value], None]] = {
    Op.ADD: _add_backward,
    Op.SUB: _sub_backward,
    Op.MUL: _mul_backward,
    Op.DIV: _div_backward,
    Op.POW: _pow_backward,
    Op.LOG: _log_backward,
    Op.EXP: _exp_backward,
    Op.SIN: _sin_backward,
    Op.COS: _cos_backward,
    Op.RELU: _relu_backward,
    Op.SIGMOID: _sigmoid_backward,
    Op.TANH: _tanh_backward,
}


# =============================================================================
# Graph Traversal
# =============================================================================

def topological_sort(root: Value) -> List[Value]:
    """
    Compute topological ordering of computation graph rooted at `root`.

    Depth-first post-order: every node appears after all of its operands, and
    each node appears exactly once. Nodes are deduplicated by identity since
    shared parameters make the graph a DAG rather than a tree.

    Iterative, so deep graphs do not hit the interpreter's recursion limit.

    Args:
        root: The root node of the computation graph.

    Returns:
        List of Values in topological order (root is last).

    Example:
        >>> a = Value(1.0)
        >>> b = Value(2.0)
        >>> c = a + b
        >>> d = c * a
        >>> topo = topological_sort(d)
        >>> # topo will be [a, b, c, d]
    """
    topo: List[Value] = []
    visited: Set[int] = set()
    stack: List[Tuple[Value, bool]] = [(root, False)]

    while stack:
        node, expanded = stack.pop()
        if expanded:
            topo.append(node)
            continue
        if id(node) in visited:
            continue
        visited.add(id(node))
        stack.append((node, True))
        # Reversed so operands are visited left to right
        for child in reversed(node._prev):
            if id(child) not in visited:
                stack.append((child, False))

    return topo


def draw_graph(root: Value, format: str = 'text') -> str:
    """
    Generate a visualization of the computation graph.

    Args:
        root: Root node of the graph to visualize.
        format: 'text' for a plain listing, 'dot' for Graphviz DOT format.

    Returns:
        String representation of the graph.

    Raises:
        ValueError: If format is not recognized.
    """
    nodes = topological_sort(root)
    node_ids = {id(n): i for i, n in enumerate(nodes)}

    def name(node: Value) -> str:
        return node.label or f'v{node_ids[id(node)]}'

    if format == 'dot':
        lines = ['digraph G {', '  rankdir=LR;']
        for node in nodes:
            nid = node_ids[id(node)]
            lines.append(
                f'  n{nid} [label="{name(node)}\\n'
                f'data={node.data:.4f}\\n'
                f'grad={node.grad:.4f}", shape=box];'
            )
            if node.op:
                op_id = f'op{nid}'
                lines.append(f'  {op_id} [label="{node.op}", shape=circle];')
                lines.append(f'  {op_id} -> n{nid};')
                for child in node._prev:
                    lines.append(f'  n{node_ids[id(child)]} -> {op_id};')
        lines.append('}')
        return '\n'.join(lines)

    if format != 'text':
        raise ValueError(f"Unknown graph format '{format}', expected 'text' or 'dot'")

    lines = ['Computation Graph:', '=' * 50]
    for node in reversed(nodes):
        op_str = ''
        if node._prev:
            op_str = f' = {node.op}(' + ', '.join(name(c) for c in node._prev) + ')'
        lines.append(
            f'{name(node):>10}: data={node.data:>10.4f}, '
            f'grad={node.grad:>10.4f}{op_str}'
        )
    return '\n'.join(lines)
