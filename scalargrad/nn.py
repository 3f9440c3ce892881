"""
Neural Network Module
=====================

PyTorch-like neural network building blocks using our autograd engine.

This module provides:
- Activation: The closed set of activation kinds a neuron can apply
- Module: Base class for all neural network components
- Neuron: A single neuron with weights, bias, and activation
- Layer: A collection of neurons (fully connected layer)
- MLP: Multi-layer perceptron (stack of layers)
- create_network: Build an MLP from a list of layer widths
- Scalar losses (mse, mae) and the SGD optimizer

The API mirrors PyTorch's nn.Module:
- model.parameters() returns all trainable parameters
- model.zero_grad() resets all gradients
- Forward pass is model.forward(x), or just calling the model: model(x)

Parameters (weights and biases) are leaf Values owned by their Neuron. Every
forward pass builds a fresh graph on top of them; the graph itself is
disposable and is released once the caller drops the output.
"""

from __future__ import annotations
import logging
import math
from enum import Enum
import numpy as np
from typing import List, Union, Optional, Sequence

from .engine import Value
from .errors import DimensionMismatchError, InvalidTopologyError, StateError
from .state import LayerState, NetworkState

logger = logging.getLogger(__name__)

Input = Union[Value, float]
Seed = Union[None, int, np.random.Generator]


class Activation(str, Enum):
    """Activation kinds. Applied after a neuron's weighted sum."""

    LINEAR = 'linear'
    RELU = 'relu'
    SIGMOID = 'sigmoid'
    TANH = 'tanh'

    @classmethod
    def parse(cls, kind: Union[str, Activation]) -> Activation:
        """
        Resolve an activation from an enum member or its name.

        'identity' is accepted as a synonym for 'linear'.

        Raises:
            ValueError: If the name is not a known activation.
        """
        if isinstance(kind, cls):
            return kind
        name = str(kind).strip().lower()
        if name == 'identity':
            name = 'linear'
        try:
            return cls(name)
        except ValueError:
            known = ', '.join(a.value for a in cls)
            raise ValueError(f"Unknown activation '{kind}', expected one of: {known}") from None

    def apply(self, x: Value) -> Value:
        if self is Activation.RELU:
            return x.relu()
        if self is Activation.SIGMOID:
            return x.sigmoid()
        if self is Activation.TANH:
            return x.tanh()
        return x


# =============================================================================
# Initialization
# =============================================================================

SMALL_INIT_LIMIT = 0.05


def init_limit(init: str, fan_in: int, fan_out: int) -> float:
    """
    Half-width of the uniform range weights are drawn from.

    Args:
        init: 'xavier' for Glorot scaling, 'small' for a fixed +-0.05 range.
        fan_in: Inputs per neuron.
        fan_out: Neurons in the layer.

    Raises:
        ValueError: If init is not recognized.
    """
    if init == 'xavier':
        return math.sqrt(6.0 / (fan_in + fan_out))
    if init == 'small':
        return SMALL_INIT_LIMIT
    raise ValueError(f"Unknown init '{init}', expected 'xavier' or 'small'")


class Module:
    """
    Base class for all neural network modules.

    Your models should subclass this class. Provides:
    - parameters(): collect all trainable Value objects
    - zero_grad(): reset gradients before backward pass
    """

    def parameters(self) -> List[Value]:
        """
        Return all trainable parameters in this module.

        Override this in subclasses to return the module's parameters.
        """
        return []

    def zero_grad(self) -> None:
        """
        Reset gradients of all parameters to zero.

        Call this before each backward pass to prevent gradient accumulation.
        """
        for p in self.parameters():
            p.grad = 0.0

    zero_gradients = zero_grad

    def forward(self, x):
        raise NotImplementedError

    def __call__(self, x):
        return self.forward(x)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class Neuron(Module):
    """
    A single artificial neuron.

    Computes: output = activation(sum(w_i * x_i) + b)

    Attributes:
        w: List of weight Values
        b: Bias Value
        activation: Which activation function to apply

    Example:
        >>> n = Neuron(3, activation='relu')  # 3 inputs
        >>> x = [Value(1.0), Value(2.0), Value(3.0)]
        >>> out = n(x)  # Forward pass
    """

    def __init__(
        self,
        nin: int,
        activation: Union[str, Activation] = Activation.RELU,
        limit: Optional[float] = None,
        rng: Seed = None
    ) -> None:
        """
        Initialize a neuron.

        Args:
            nin: Number of inputs to this neuron.
            activation: Activation kind ('linear', 'relu', 'tanh', 'sigmoid').
            limit: Weights are drawn uniformly from [-limit, limit].
                Defaults to the Xavier limit for a single output.
            rng: numpy Generator or seed used for the draw.
        """
        if nin < 1:
            raise InvalidTopologyError(f"Neuron needs at least one input, got {nin}")
        if limit is None:
            limit = init_limit('xavier', nin, 1)

        rng = np.random.default_rng(rng)
        self.w: List[Value] = [
            Value(float(wi), label=f'w{i}')
            for i, wi in enumerate(rng.uniform(-limit, limit, size=nin))
        ]
        self.b: Value = Value(0.0, label='b')
        self.activation: Activation = Activation.parse(activation)

    @property
    def nin(self) -> int:
        return len(self.w)

    def forward(self, x: Sequence[Input]) -> Value:
        """
        Forward pass: compute neuron output.

        Args:
            x: Sequence of inputs (Values or floats).

        Returns:
            Single Value representing neuron output.

        Raises:
            DimensionMismatchError: If input length doesn't match weight count.
        """
        if len(x) != len(self.w):
            raise DimensionMismatchError(
                f"Neuron expected {len(self.w)} inputs, got {len(x)}",
                expected=len(self.w), actual=len(x)
            )

        # Weighted sum: sum(w_i * x_i) + b
        act = sum(
            (wi * xi for wi, xi in zip(self.w, x)),
            start=self.b
        )
        return self.activation.apply(act)

    def parameters(self) -> List[Value]:
        """Return weights and bias."""
        return self.w + [self.b]

    def label_parameters(self, prefix: str) -> None:
        for i, wi in enumerate(self.w):
            wi.label = f'{prefix}.w{i}'
        self.b.label = f'{prefix}.b'

    def __repr__(self) -> str:
        return f"Neuron({len(self.w)}, {self.activation.value})"


class Layer(Module):
    """
    A fully connected layer of neurons.

    Every neuron receives the same input and they do not interact, so a
    layer with `nout` neurons transforms an input of size `nin` to an
    output of size `nout`.

    Attributes:
        neurons: List of Neuron objects

    Example:
        >>> layer = Layer(3, 4)  # 3 inputs, 4 outputs
        >>> x = [Value(1.0), Value(2.0), Value(3.0)]
        >>> out = layer(x)  # Returns list of 4 Values
    """

    def __init__(
        self,
        nin: int,
        nout: int,
        activation: Union[str, Activation] = Activation.RELU,
        init: str = 'xavier',
        rng: Seed = None
    ) -> None:
        """
        Initialize a layer.

        Args:
            nin: Number of inputs per neuron.
            nout: Number of neurons (outputs).
            activation: Activation kind for all neurons.
            init: Weight initialization scheme, 'xavier' or 'small'.
            rng: numpy Generator or seed shared by all neurons.
        """
        if nin < 1 or nout < 1:
            raise InvalidTopologyError(f"Layer widths must be positive, got {nin} -> {nout}")

        rng = np.random.default_rng(rng)
        limit = init_limit(init, nin, nout)
        self.neurons: List[Neuron] = [
            Neuron(nin, activation=activation, limit=limit, rng=rng)
            for _ in range(nout)
        ]

    @property
    def nin(self) -> int:
        return self.neurons[0].nin

    @property
    def nout(self) -> int:
        return len(self.neurons)

    @property
    def activation(self) -> Activation:
        return self.neurons[0].activation

    def forward(self, x: Sequence[Input]) -> List[Value]:
        """
        Forward pass: compute all neuron outputs.

        Raises:
            DimensionMismatchError: If input length doesn't match the layer's width,
                checked before any neuron runs.
        """
        if len(x) != self.nin:
            raise DimensionMismatchError(
                f"Layer expected {self.nin} inputs, got {len(x)}",
                expected=self.nin, actual=len(x)
            )
        return [n(x) for n in self.neurons]

    def parameters(self) -> List[Value]:
        """Return all parameters from all neurons."""
        return [p for n in self.neurons for p in n.parameters()]

    def state(self, outputs: Optional[Sequence[Value]] = None) -> LayerState:
        """Snapshot weights, biases and their gradients as numpy arrays."""
        weights = np.array([[n.w[j].data for n in self.neurons] for j in range(self.nin)])
        weight_grads = np.array([[n.w[j].grad for n in self.neurons] for j in range(self.nin)])
        if outputs is None:
            values = np.full(self.nout, np.nan)
        else:
            values = np.array([o.data for o in outputs])
        return LayerState(
            activation=self.activation.value,
            outputs=values,
            biases=np.array([n.b.data for n in self.neurons]),
            bias_gradients=np.array([n.b.grad for n in self.neurons]),
            weights=weights,
            weight_gradients=weight_grads,
        )

    def __repr__(self) -> str:
        return f"Layer({self.nin} -> {self.nout}, {self.activation.value})"


def _resolve_activations(
    activations: Union[None, str, Activation, Sequence[Union[str, Activation]]],
    n_layers: int
) -> List[Activation]:
    if activations is None or (not isinstance(activations, (str, Activation)) and len(activations) == 0):
        activations = Activation.RELU
    if isinstance(activations, (str, Activation)):
        # One kind for hidden layers, linear output
        hidden = Activation.parse(activations)
        return [hidden] * (n_layers - 1) + [Activation.LINEAR]

    kinds = [Activation.parse(a) for a in activations]
    if len(kinds) != n_layers:
        raise InvalidTopologyError(
            f"Got {len(kinds)} activations for {n_layers} layers"
        )
    return kinds


class MLP(Module):
    """
    Multi-Layer Perceptron: a stack of fully connected layers.

    Architecture:
        Input -> Hidden1 -> ... -> HiddenN -> Output

    Layer i's neuron count equals layer i+1's input width. By default hidden
    layers use relu and the output layer is linear, which suits regression.

    The most recent forward pass's input and per-layer outputs are kept for
    introspection (get_activations, get_state). They are not part of the
    model and are replaced on every forward call.

    Attributes:
        layers: List of Layer objects

    Example:
        >>> # Create MLP: 3 inputs -> 4 hidden -> 4 hidden -> 1 output
        >>> model = MLP(3, [4, 4, 1])
        >>> x = [Value(1.0), Value(2.0), Value(3.0)]
        >>> out = model(x)  # Single output Value
    """

    def __init__(
        self,
        nin: int,
        nouts: Sequence[int],
        activations: Union[None, str, Activation, Sequence[Union[str, Activation]]] = None,
        init: str = 'xavier',
        rng: Seed = None
    ) -> None:
        """
        Initialize an MLP.

        Args:
            nin: Number of input features.
            nouts: List of layer sizes. Last element is output size.
            activations: None (or an empty sequence) for relu hidden layers and a linear output;
                a single kind for all hidden layers (output stays linear);
                or a sequence with one kind per layer in nouts.
            init: Weight initialization scheme, 'xavier' or 'small'.
            rng: numpy Generator or integer seed for reproducible weights.

        Raises:
            InvalidTopologyError: If nouts is empty, a width is not positive,
                or the activation sequence has the wrong length.

        Example:
            MLP(3, [4, 4, 1]) creates:
            - Layer 1: 3 -> 4 (relu)
            - Layer 2: 4 -> 4 (relu)
            - Layer 3: 4 -> 1 (linear output)
        """
        nouts = list(nouts)
        if not nouts:
            raise InvalidTopologyError("MLP needs at least one layer after the input")
        if nin < 1 or any(n < 1 for n in nouts):
            raise InvalidTopologyError(f"Layer widths must be positive, got {[nin] + nouts}")

        kinds = _resolve_activations(activations, len(nouts))
        rng = np.random.default_rng(rng)
        sizes = [nin] + nouts

        self._set_layers([
            Layer(sizes[i], sizes[i + 1], activation=kinds[i], init=init, rng=rng)
            for i in range(len(nouts))
        ])
        logger.debug(f"[MLP] Built {self!r} with {len(self.parameters())} parameters")

    @classmethod
    def from_layers(cls, layers: Sequence[Layer]) -> MLP:
        """
        Build an MLP from existing layers.

        Raises:
            InvalidTopologyError: If no layers are given or adjacent widths differ.
        """
        model = cls.__new__(cls)
        model._set_layers(list(layers))
        return model

    @classmethod
    def for_regression(
        cls,
        hidden_sizes: Sequence[int] = (16, 8),
        activation: Union[str, Activation] = Activation.RELU,
        **kwargs
    ) -> MLP:
        """One input, one linear output, `activation` on every hidden layer."""
        return cls(1, list(hidden_sizes) + [1], activations=activation, **kwargs)

    def _set_layers(self, layers: List[Layer]) -> None:
        if not layers:
            raise InvalidTopologyError("MLP needs at least one layer after the input")
        for i in range(len(layers) - 1):
            if layers[i].nout != layers[i + 1].nin:
                raise InvalidTopologyError(
                    f"Layer {i} outputs {layers[i].nout} values "
                    f"but layer {i + 1} expects {layers[i + 1].nin}"
                )

        self.layers: List[Layer] = layers
        self._activations: Optional[List[List[Value]]] = None
        for li, layer in enumerate(layers):
            for ni, neuron in enumerate(layer.neurons):
                neuron.label_parameters(f'L{li + 1}.n{ni}')

    @property
    def nin(self) -> int:
        return self.layers[0].nin

    @property
    def nout(self) -> int:
        return self.layers[-1].nout

    @property
    def widths(self) -> List[int]:
        """Layer widths, input layer first."""
        return [self.nin] + [layer.nout for layer in self.layers]

    def forward(self, x: Sequence[Input]) -> Union[Value, List[Value]]:
        """
        Forward pass through all layers.

        Args:
            x: Input values. Raw numbers are lifted to leaf Values.

        Returns:
            Output Value(s). Returns single Value if output size is 1,
            otherwise returns list of Values.

        Raises:
            DimensionMismatchError: If len(x) differs from the input width.
        """
        if len(x) != self.nin:
            raise DimensionMismatchError(
                f"Network expected {self.nin} inputs, got {len(x)}",
                expected=self.nin, actual=len(x)
            )

        x = [xi if isinstance(xi, Value) else Value(xi) for xi in x]
        activations = [x]
        for layer in self.layers:
            x = layer(x)
            activations.append(x)
        self._activations = activations

        # Unwrap single-element output
        return x[0] if len(x) == 1 else x

    def parameters(self) -> List[Value]:
        """
        Return all parameters from all layers.

        Order: layer, then neuron, then weights by input index, bias last.
        """
        return [p for layer in self.layers for p in layer.parameters()]

    def get_activations(self) -> List[List[Value]]:
        """
        Per-layer outputs of the most recent forward pass, input layer first.

        Raises:
            StateError: If forward() has not been called yet.
        """
        if self._activations is None:
            raise StateError("No activations available. Call forward() first.")
        return [list(layer) for layer in self._activations]

    def get_state(self, loss: Optional[Union[Value, float]] = None) -> NetworkState:
        """
        Snapshot parameters, gradients and the latest activations.

        Works before any forward pass; layer outputs are NaN in that case.
        """
        if isinstance(loss, Value):
            loss = loss.data
        if self._activations is None:
            inputs = np.full(self.nin, np.nan)
            outputs: List[Optional[List[Value]]] = [None] * len(self.layers)
        else:
            inputs = np.array([v.data for v in self._activations[0]])
            outputs = self._activations[1:]
        return NetworkState(
            inputs=inputs,
            layers=[layer.state(out) for layer, out in zip(self.layers, outputs)],
            loss=loss,
        )

    def clone(self) -> MLP:
        """Copy architecture, parameter values and gradients into a new network."""
        model = MLP.from_layers([
            Layer(layer.nin, layer.nout, activation=layer.activation)
            for layer in self.layers
        ])
        for src, dst in zip(self.parameters(), model.parameters()):
            dst.data = src.data
            dst.grad = src.grad
        return model

    def __repr__(self) -> str:
        layer_strs = [str(layer) for layer in self.layers]
        return f"MLP([{', '.join(layer_strs)}])"


def create_network(
    widths: Sequence[int],
    activations: Union[None, str, Activation, Sequence[Union[str, Activation]]] = None,
    **kwargs
) -> MLP:
    """
    Build an MLP from layer widths, input layer first.

    Args:
        widths: e.g. [1, 8, 1] for one input, one hidden layer of 8, one output.
        activations: See MLP.
        **kwargs: Passed through to MLP (init, rng).

    Raises:
        InvalidTopologyError: If fewer than two widths are given.
    """
    widths = list(widths)
    if len(widths) < 2:
        raise InvalidTopologyError(
            f"Network must have at least input and output layers, got widths {widths}"
        )
    return MLP(widths[0], widths[1:], activations=activations, **kwargs)


# =============================================================================
# Loss Functions
# =============================================================================

class LossKind(str, Enum):
    MSE = 'mse'
    MAE = 'mae'

    @classmethod
    def parse(cls, kind: Union[str, LossKind]) -> LossKind:
        if isinstance(kind, cls):
            return kind
        try:
            return cls(str(kind).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown loss '{kind}', expected 'mse' or 'mae'") from None


def mse_loss(prediction: Value, target: Union[Value, float]) -> Value:
    """
    Squared error for a single prediction: (pred - target)^2

    Unscaled, so d(loss)/d(pred) = 2 * (pred - target).
    """
    diff = prediction - target
    return diff * diff


def mae_loss(prediction: Value, target: Union[Value, float]) -> Value:
    """
    Absolute error for a single prediction: |pred - target|

    Built as relu(d) + relu(-d), which equals |d| for every real d.
    """
    diff = prediction - target
    return diff.relu() + (-diff).relu()


def calculate_loss(
    prediction: Value,
    target: Union[Value, float],
    kind: Union[str, LossKind] = LossKind.MSE
) -> Value:
    """Dispatch to mse_loss or mae_loss by kind."""
    if LossKind.parse(kind) is LossKind.MAE:
        return mae_loss(prediction, target)
    return mse_loss(prediction, target)


# =============================================================================
# Optimizers
# =============================================================================

class SGD:
    """
    Stochastic Gradient Descent optimizer.

    Updates parameters: p = p - lr * clip(p.grad)

    Attributes:
        params: List of parameters to optimize.
        lr: Learning rate.
        clip: If set, each gradient is clamped to [-clip, clip] before the update.
    """

    def __init__(self, params: List[Value], lr: float = 0.01, clip: Optional[float] = None) -> None:
        if lr <= 0:
            raise ValueError(f"Learning rate must be positive, got {lr}")
        if clip is not None and clip <= 0:
            raise ValueError(f"Gradient clip must be positive, got {clip}")
        self.params = params
        self.lr = lr
        self.clip = clip

    def step(self) -> None:
        """
        Perform one optimization step.

        Call this after backward() has populated every gradient. Parameters
        whose gradient is NaN are left unchanged.
        """
        for p in self.params:
            g = p.grad
            if math.isnan(g):
                logger.warning(f"[SGD] Skipping update of {p.label or 'parameter'}: gradient is NaN")
                continue
            if self.clip is not None:
                g = max(-self.clip, min(self.clip, g))
            p.data -= self.lr * g

    def zero_grad(self) -> None:
        """Reset all gradients to zero."""
        for p in self.params:
            p.grad = 0.0
