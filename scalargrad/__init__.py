"""ScalarGrad: a scalar-value autograd engine and the MLP built on it."""

from .engine import Value, Op, topological_sort, draw_graph
from .errors import (
    ScalarGradError,
    DimensionMismatchError,
    DomainError,
    InvalidTopologyError,
    StateError,
)
from .nn import (
    Activation,
    Module,
    Neuron,
    Layer,
    MLP,
    create_network,
    LossKind,
    mse_loss,
    mae_loss,
    calculate_loss,
    SGD,
)
from .state import LayerState, NetworkState
from .config import TrainingConfig
from .training import Sample, StepResult, TrainingHistory, Trainer
from .presets import FUNCTION_PRESETS, FunctionPreset, generate_function_data

__all__ = [
    "Value",
    "Op",
    "topological_sort",
    "draw_graph",
    "ScalarGradError",
    "DimensionMismatchError",
    "DomainError",
    "InvalidTopologyError",
    "StateError",
    "Activation",
    "Module",
    "Neuron",
    "Layer",
    "MLP",
    "create_network",
    "LossKind",
    "mse_loss",
    "mae_loss",
    "calculate_loss",
    "SGD",
    "LayerState",
    "NetworkState",
    "TrainingConfig",
    "Sample",
    "StepResult",
    "TrainingHistory",
    "Trainer",
    "FUNCTION_PRESETS",
    "FunctionPreset",
    "generate_function_data",
]
