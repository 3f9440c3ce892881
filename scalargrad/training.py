"""
Training loop.

Runs the per-sample cycle the engine requires, in this order and never
overlapped:

    zero_grad -> forward -> loss -> backward -> optimizer step

Skipping zero_grad would let gradients from the previous sample accumulate
into the update. Each step's graph is dropped once the step returns, so
memory is bounded by a single sample's graph.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .config import TrainingConfig
from .engine import Value
from .nn import MLP, SGD, calculate_loss, create_network

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Sample:
    """One training pair."""

    input: float
    target: float

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[float, float]]) -> List[Sample]:
        return [cls(float(x), float(y)) for x, y in pairs]


@dataclass(frozen=True)
class StepResult:
    prediction: float
    loss: float


@dataclass
class TrainingHistory:
    """Mean loss per epoch on the training set and, if given, the test set."""

    train_losses: List[float] = field(default_factory=list)
    test_losses: List[float] = field(default_factory=list)

    @property
    def epochs(self) -> int:
        return len(self.train_losses)

    @property
    def final_loss(self) -> Optional[float]:
        return self.train_losses[-1] if self.train_losses else None


EpochCallback = Callable[[int, TrainingHistory], None]


class Trainer:
    """
    Fits an MLP to scalar (input, target) samples with SGD.

    Attributes:
        model: The network being trained.
        config: Loss, optimizer and loop settings.
        optimizer: SGD over model.parameters().
    """

    def __init__(self, model: MLP, config: Optional[TrainingConfig] = None) -> None:
        self.model = model
        self.config = config or TrainingConfig()
        self.optimizer = SGD(
            model.parameters(),
            lr=self.config.learning_rate,
            clip=self.config.clip_gradient,
        )
        self._rng = np.random.default_rng(self.config.seed)

    @classmethod
    def from_config(cls, config: TrainingConfig) -> Trainer:
        """Build a regression network shaped by the config and wrap it."""
        model = create_network(
            config.widths,
            activations=config.activation,
            init=config.init,
            rng=config.seed,
        )
        return cls(model, config)

    def _forward(self, x: float) -> Value:
        out = self.model([Value(x)])
        if isinstance(out, list):
            raise ValueError(f"Trainer needs a single-output network, got {len(out)} outputs")
        return out

    def train_step(self, sample: Sample) -> StepResult:
        """Run one zero_grad/forward/loss/backward/step cycle on a sample."""
        self.optimizer.zero_grad()
        prediction = self._forward(sample.input)
        loss = calculate_loss(prediction, sample.target, self.config.loss)
        loss.backward()
        # Read everything needed from the graph before parameters change
        result = StepResult(prediction=prediction.data, loss=loss.data)
        self.optimizer.step()

        if not math.isfinite(result.loss):
            logger.warning(
                f"[Trainer] Non-finite loss {result.loss} at input {sample.input}"
            )
        return result

    def train_epoch(self, samples: Sequence[Sample]) -> float:
        """One pass over samples. Returns the mean per-sample loss."""
        if not samples:
            raise ValueError("Cannot train on an empty sample set")

        order: Sequence[int] = range(len(samples))
        if self.config.shuffle:
            order = self._rng.permutation(len(samples))

        losses = [self.train_step(samples[i]).loss for i in order]
        return float(np.mean(losses))

    def evaluate(self, samples: Sequence[Sample]) -> float:
        """Mean loss over samples without touching gradients or parameters."""
        if not samples:
            raise ValueError("Cannot evaluate on an empty sample set")
        losses = [
            calculate_loss(self._forward(s.input), s.target, self.config.loss).data
            for s in samples
        ]
        return float(np.mean(losses))

    def predict(self, x: float) -> float:
        return self._forward(x).data

    def fit(
        self,
        train: Sequence[Sample],
        test: Optional[Sequence[Sample]] = None,
        epochs: Optional[int] = None,
        callback: Optional[EpochCallback] = None
    ) -> TrainingHistory:
        """
        Train for a number of epochs.

        Args:
            train: Training samples.
            test: Optional held-out samples, evaluated after every epoch.
            epochs: Overrides config.epochs.
            callback: Called as callback(epoch, history) after every epoch.

        Returns:
            TrainingHistory with one train (and test) loss per epoch.
        """
        epochs = self.config.epochs if epochs is None else epochs
        history = TrainingHistory()
        logger.info(
            f"[Trainer] Training {self.model!r} on {len(train)} samples "
            f"for {epochs} epochs (lr={self.config.learning_rate}, loss={self.config.loss.value})"
        )

        for epoch in range(epochs):
            history.train_losses.append(self.train_epoch(train))
            if test:
                history.test_losses.append(self.evaluate(test))

            if self.config.log_every and (epoch + 1) % self.config.log_every == 0:
                msg = f"[Trainer] Epoch {epoch + 1}/{epochs} | loss {history.train_losses[-1]:.4f}"
                if test:
                    msg += f" | test {history.test_losses[-1]:.4f}"
                logger.info(msg)

            if callback is not None:
                callback(epoch, history)

        return history
