"""
Network state snapshots.

Plain-data views of an MLP at a point in time, detached from the computation
graph. These are what a visualizer reads: nothing here holds a Value.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np


@dataclass
class LayerState:
    """
    Snapshot of one non-input layer.

    Attributes:
        activation: Activation kind of the layer's neurons.
        outputs: Output value of each neuron, shape (nout,).
        biases: Bias of each neuron, shape (nout,).
        bias_gradients: Gradient of each bias, shape (nout,).
        weights: Weight matrix indexed [from_neuron][to_neuron], shape (nin, nout).
        weight_gradients: Gradients with the same layout as weights.
    """

    activation: str
    outputs: np.ndarray
    biases: np.ndarray
    bias_gradients: np.ndarray
    weights: np.ndarray
    weight_gradients: np.ndarray

    @property
    def nin(self) -> int:
        return self.weights.shape[0]

    @property
    def nout(self) -> int:
        return self.weights.shape[1]


@dataclass
class NetworkState:
    """Snapshot of a whole network: the input values plus every layer."""

    inputs: np.ndarray
    layers: List[LayerState] = field(default_factory=list)
    loss: Optional[float] = None

    def activations(self) -> List[np.ndarray]:
        """Per-layer activation vectors, input layer first."""
        return [self.inputs] + [layer.outputs for layer in self.layers]
