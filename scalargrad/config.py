"""
Training configuration.

Network shape, loss, and optimizer settings for a training run live here.
No hardcoded values in the training loop.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .nn import Activation, LossKind


@dataclass
class TrainingConfig:
    """Configuration for a 1-input, 1-output regression training run."""

    # Network
    hidden_sizes: Tuple[int, ...] = (16, 8)
    activation: Activation = Activation.RELU  # hidden layers; output is linear
    init: str = 'xavier'  # or 'small' for uniform +-0.05

    # Objective
    loss: LossKind = LossKind.MSE

    # Optimizer
    learning_rate: float = 0.01
    clip_gradient: Optional[float] = 1.0  # None disables clipping

    # Loop
    epochs: int = 100
    shuffle: bool = False
    seed: Optional[int] = None  # weights and shuffling
    log_every: int = 10  # epochs between progress log lines, 0 disables

    def __post_init__(self) -> None:
        self.hidden_sizes = tuple(int(n) for n in self.hidden_sizes)
        self.activation = Activation.parse(self.activation)
        self.loss = LossKind.parse(self.loss)

        if any(n < 1 for n in self.hidden_sizes):
            raise ValueError(f"hidden_sizes must be positive, got {self.hidden_sizes}")
        if self.init not in ('xavier', 'small'):
            raise ValueError(f"init must be 'xavier' or 'small', got '{self.init}'")
        if self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {self.learning_rate}")
        if self.clip_gradient is not None and self.clip_gradient <= 0:
            raise ValueError(f"clip_gradient must be positive or None, got {self.clip_gradient}")
        if self.epochs < 0:
            raise ValueError(f"epochs must be non-negative, got {self.epochs}")
        if self.log_every < 0:
            raise ValueError(f"log_every must be non-negative, got {self.log_every}")

    @property
    def widths(self) -> Tuple[int, ...]:
        """Full layer widths, input and output included."""
        return (1,) + self.hidden_sizes + (1,)
