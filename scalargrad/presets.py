"""
Built-in regression targets.

A handful of one-dimensional functions to fit, each paired with a network
size and training settings that are known to work for it.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .config import TrainingConfig
from .nn import MLP
from .training import Sample


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


FUNCTIONS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    'linear': lambda x: 2 * x + 1,
    'quadratic': lambda x: x ** 2,
    'sine': np.sin,
    'sigmoid': _sigmoid,
    'cubic': lambda x: x ** 3 - 2 * x,
}


def generate_function_data(
    name: str,
    num_points: int = 100,
    x_min: float = -5.0,
    x_max: float = 5.0
) -> List[Sample]:
    """
    Evenly spaced samples of a built-in function over [x_min, x_max].

    Raises:
        ValueError: If the function name is unknown or num_points < 2.
    """
    if name not in FUNCTIONS:
        raise ValueError(f"Unknown function '{name}', expected one of: {', '.join(FUNCTIONS)}")
    if num_points < 2:
        raise ValueError(f"num_points must be at least 2, got {num_points}")

    xs = np.linspace(x_min, x_max, num_points)
    ys = FUNCTIONS[name](xs)
    return Sample.from_pairs(zip(xs, ys))


@dataclass(frozen=True)
class FunctionPreset:
    label: str
    hidden_sizes: Tuple[int, ...]
    learning_rate: float
    epochs: int

    def build_network(self, seed: Optional[int] = None) -> MLP:
        return MLP.for_regression(self.hidden_sizes, rng=seed)

    def training_config(self, **overrides) -> TrainingConfig:
        settings = dict(
            hidden_sizes=self.hidden_sizes,
            learning_rate=self.learning_rate,
            epochs=self.epochs,
        )
        settings.update(overrides)
        return TrainingConfig(**settings)


FUNCTION_PRESETS: Dict[str, FunctionPreset] = {
    'linear': FunctionPreset('Linear (y = 2x + 1)', (4,), 0.01, 100),
    'quadratic': FunctionPreset('Quadratic (y = x²)', (8, 4), 0.01, 200),
    'sine': FunctionPreset('Sine (y = sin(x))', (16, 8), 0.005, 300),
    'sigmoid': FunctionPreset('Sigmoid (y = 1/(1+e^(-x)))', (8, 4), 0.01, 200),
    'cubic': FunctionPreset('Cubic (y = x³ - 2x)', (16, 8), 0.001, 400),
}
