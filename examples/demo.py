#!/usr/bin/env python3
"""
ScalarGrad Demo: Fitting a Function with a Scalar Autograd Network
==================================================================

This demo shows the complete workflow:
1. Compute gradients of a small expression by hand-checkable backprop
2. Inspect the computation graph
3. Fit an MLP to a built-in target function and plot the result

Run: python examples/demo.py [preset]   (default preset: sine)
"""

import logging
import sys
from typing import List

import numpy as np
import matplotlib.pyplot as plt

from scalargrad import (
    FUNCTION_PRESETS,
    MLP,
    Trainer,
    Value,
    draw_graph,
    generate_function_data,
)


def plot_fit(model: MLP, name: str, x_min: float = -5.0, x_max: float = 5.0) -> None:
    """
    Plot the target function against the network's predictions.

    Args:
        model: Trained MLP.
        name: Preset name of the target function.
        x_min: Left end of the plotted range.
        x_max: Right end of the plotted range.
    """
    data = generate_function_data(name, num_points=200, x_min=x_min, x_max=x_max)
    xs = np.array([s.input for s in data])
    ys = np.array([s.target for s in data])
    preds = np.array([model([x]).data for x in xs])

    plt.figure(figsize=(10, 6))
    plt.plot(xs, ys, 'k--', linewidth=2, label='target')
    plt.plot(xs, preds, 'b-', linewidth=2, label='network')
    plt.xlabel('x')
    plt.ylabel('y')
    plt.title(FUNCTION_PRESETS[name].label)
    plt.legend()
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig('./fit.png', dpi=150)
    plt.close()
    print("Saved fit plot to: fit.png")


def plot_loss_curve(train_losses: List[float], test_losses: List[float]) -> None:
    plt.figure(figsize=(10, 6))
    plt.plot(train_losses, 'b-', linewidth=2, label='train')
    if test_losses:
        plt.plot(test_losses, 'r-', linewidth=2, label='test')
    plt.xlabel('Epoch')
    plt.ylabel('Loss')
    plt.yscale('log')
    plt.title('Training Loss Curve')
    plt.legend()
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig('./loss_curve.png', dpi=150)
    plt.close()
    print("Saved loss curve to: loss_curve.png")


def demo_gradient_computation():
    """Gradients of f(x) = x^2 + 2x + 1 and g(a, b) = tanh(a*b + a^2)."""
    print("=" * 60)
    print("DEMO 1: Automatic Gradient Computation")
    print("=" * 60)
    print()

    x = Value(3.0, label='x')
    f = x ** 2 + 2 * x + 1
    f.backward()

    print("f(x) = x² + 2x + 1 at x = 3")
    print(f"f(3) = {f.data}")
    print(f"df/dx = {x.grad}   (analytical: 2x + 2 = 8)")
    print()

    a = Value(2.0, label='a')
    b = Value(3.0, label='b')
    g = (a * b + a ** 2).tanh()
    g.backward()

    print("g(a, b) = tanh(a*b + a²) at a = 2, b = 3")
    print(f"g = {g.data:.6f}, dg/da = {a.grad:.6f}, dg/db = {b.grad:.6f}")
    print()


def demo_graph():
    """Print the graph of one neuron-sized expression after backprop."""
    print("=" * 60)
    print("DEMO 2: Computation Graph")
    print("=" * 60)
    print()

    w = Value(0.5, label='w')
    x = Value(2.0, label='x')
    bias = Value(-0.2, label='b')
    z = w * x + bias
    z.label = 'z'
    out = z.sigmoid()
    out.label = 'out'
    out.backward()

    print(draw_graph(out, format='text'))
    print()


def demo_fit(name: str):
    """Fit an MLP to a preset function."""
    print("=" * 60)
    print(f"DEMO 3: Fitting {FUNCTION_PRESETS[name].label}")
    print("=" * 60)
    print()

    preset = FUNCTION_PRESETS[name]
    config = preset.training_config(seed=42, shuffle=True, log_every=25)

    data = generate_function_data(name, num_points=60)
    rng = np.random.default_rng(config.seed)
    order = rng.permutation(len(data))
    split = int(len(data) * 0.8)
    train = [data[i] for i in order[:split]]
    test = [data[i] for i in order[split:]]

    trainer = Trainer.from_config(config)
    print(f"Network: {trainer.model!r}")
    print(f"Parameters: {len(trainer.model.parameters())}")
    print(f"Training for {config.epochs} epochs on {len(train)} samples...")
    print()

    history = trainer.fit(train, test=test)

    print()
    print(f"Final train loss: {history.train_losses[-1]:.4f}")
    print(f"Final test loss:  {history.test_losses[-1]:.4f}")
    print()

    plot_fit(trainer.model, name)
    plot_loss_curve(history.train_losses, history.test_losses)
    print()


def main():
    logging.basicConfig(level=logging.INFO, format='%(message)s')
    name = sys.argv[1] if len(sys.argv) > 1 else 'sine'
    if name not in FUNCTION_PRESETS:
        print(f"Unknown preset '{name}'. Choose from: {', '.join(FUNCTION_PRESETS)}")
        sys.exit(1)

    demo_gradient_computation()
    demo_graph()
    demo_fit(name)


if __name__ == "__main__":
    main()
