"""
Unit Tests: Neuron, Layer, MLP, Losses, SGD
===========================================

Run with: pytest tests/test_nn.py -v
"""

import logging
import math
import pytest
import numpy as np

from scalargrad import (
    Value,
    Activation,
    Neuron,
    Layer,
    MLP,
    create_network,
    LossKind,
    mse_loss,
    mae_loss,
    calculate_loss,
    SGD,
    topological_sort,
    DimensionMismatchError,
    InvalidTopologyError,
    StateError,
)


TOLERANCE = 1e-6


def assert_close(actual: float, expected: float, tol: float = TOLERANCE) -> None:
    """Assert two values are approximately equal."""
    diff = abs(actual - expected)
    assert diff < tol, f"Values differ: {actual} vs {expected} (diff={diff})"


# =============================================================================
# Activation
# =============================================================================

class TestActivation:

    @pytest.mark.parametrize("name, expected", [
        ('relu', Activation.RELU),
        ('ReLU', Activation.RELU),
        ('identity', Activation.LINEAR),
        ('linear', Activation.LINEAR),
        (Activation.TANH, Activation.TANH),
    ])
    def test_parse(self, name, expected) -> None:
        assert Activation.parse(name) is expected

    def test_parse_unknown(self) -> None:
        with pytest.raises(ValueError, match="softplus"):
            Activation.parse('softplus')

    def test_linear_is_passthrough(self) -> None:
        x = Value(-2.0)
        assert Activation.LINEAR.apply(x) is x


# =============================================================================
# Neuron / Layer
# =============================================================================

class TestNeuron:

    def test_neuron_creation(self) -> None:
        n = Neuron(3)
        assert len(n.w) == 3
        assert n.b.data == 0.0
        assert n.activation is Activation.RELU

    def test_weights_within_limit(self) -> None:
        n = Neuron(50, limit=0.05, rng=0)
        assert all(abs(w.data) <= 0.05 for w in n.w)

    def test_seeded_init_reproducible(self) -> None:
        a = Neuron(4, rng=7)
        b = Neuron(4, rng=7)
        assert [w.data for w in a.w] == [w.data for w in b.w]

    def test_neuron_forward(self) -> None:
        n = Neuron(2, activation='linear')
        n.w[0].data = 1.0
        n.w[1].data = 2.0
        n.b.data = 0.5

        out = n([Value(1.0), Value(1.0)])
        assert out.data == 3.5

    def test_neuron_accepts_floats(self) -> None:
        n = Neuron(2, activation='linear')
        n.w[0].data = 1.0
        n.w[1].data = -1.0
        assert n([3.0, 1.0]).data == 2.0

    def test_forward_does_not_mutate_parameters(self) -> None:
        n = Neuron(2, activation='tanh', rng=1)
        before = [p.data for p in n.parameters()]
        n([0.5, -0.5])
        n([1.0, 2.0])
        assert [p.data for p in n.parameters()] == before

    def test_sigmoid_neuron_at_zero(self) -> None:
        """sigmoid(0) = 0.5 and the pre-activation gradient is 0.25."""
        n = Neuron(1, activation='sigmoid')
        n.w[0].data = 0.0
        n.b.data = 0.0

        out = n([Value(1.7)])
        assert out.data == 0.5

        out.backward()
        pre_activation = out.operands[0]
        assert pre_activation.grad == 0.25
        assert n.b.grad == 0.25

    def test_neuron_parameters(self) -> None:
        n = Neuron(3)
        params = n.parameters()
        assert len(params) == 4
        assert params[-1] is n.b

    def test_input_mismatch(self) -> None:
        n = Neuron(3)
        with pytest.raises(DimensionMismatchError) as exc:
            n([Value(1.0), Value(2.0)])
        assert exc.value.expected == 3
        assert exc.value.actual == 2
        assert '3' in str(exc.value) and '2' in str(exc.value)


class TestLayer:

    def test_layer_creation(self) -> None:
        layer = Layer(3, 4)
        assert len(layer.neurons) == 4
        assert layer.nin == 3 and layer.nout == 4

    def test_xavier_limit(self) -> None:
        layer = Layer(4, 2, rng=3)
        limit = math.sqrt(6.0 / 6)
        assert all(abs(p.data) <= limit for n in layer.neurons for p in n.w)

    def test_small_init(self) -> None:
        layer = Layer(4, 2, init='small', rng=3)
        assert all(abs(p.data) <= 0.05 for n in layer.neurons for p in n.w)

    def test_unknown_init(self) -> None:
        with pytest.raises(ValueError):
            Layer(2, 2, init='he')

    def test_layer_forward(self) -> None:
        layer = Layer(2, 3)
        out = layer([Value(1.0), Value(1.0)])
        assert len(out) == 3

    def test_neurons_are_independent(self) -> None:
        layer = Layer(2, 2, activation='linear')
        for k, n in enumerate(layer.neurons):
            n.w[0].data, n.w[1].data, n.b.data = float(k), 1.0, 0.0
        out = layer([2.0, 3.0])
        assert [o.data for o in out] == [3.0, 5.0]

    def test_layer_parameters(self) -> None:
        layer = Layer(2, 3)
        assert len(layer.parameters()) == 9

    def test_layer_mismatch_checked_first(self) -> None:
        layer = Layer(2, 3)
        with pytest.raises(DimensionMismatchError):
            layer([1.0])

    def test_zero_width_rejected(self) -> None:
        with pytest.raises(InvalidTopologyError):
            Layer(0, 3)


# =============================================================================
# MLP
# =============================================================================

class TestMLP:

    def test_mlp_creation(self) -> None:
        mlp = MLP(3, [4, 4, 1])
        assert len(mlp.layers) == 3
        assert mlp.widths == [3, 4, 4, 1]

    def test_default_activations(self) -> None:
        mlp = MLP(2, [3, 3, 1])
        kinds = [layer.activation for layer in mlp.layers]
        assert kinds == [Activation.RELU, Activation.RELU, Activation.LINEAR]

    def test_single_activation_for_hidden(self) -> None:
        mlp = MLP(2, [3, 1], activations='tanh')
        assert [l.activation for l in mlp.layers] == [Activation.TANH, Activation.LINEAR]

    def test_per_layer_activations(self) -> None:
        mlp = MLP(2, [3, 1], activations=['sigmoid', 'tanh'])
        assert [l.activation for l in mlp.layers] == [Activation.SIGMOID, Activation.TANH]

    def test_activation_count_mismatch(self) -> None:
        with pytest.raises(InvalidTopologyError):
            MLP(2, [3, 1], activations=['relu'])

    def test_empty_activation_list_uses_default(self) -> None:
        net = MLP(2, [3, 1], activations=[])
        assert [layer.activation for layer in net.layers] == [Activation.RELU, Activation.LINEAR]

    def test_empty_layers_rejected(self) -> None:
        with pytest.raises(InvalidTopologyError):
            MLP(2, [])

    def test_mlp_forward_unwraps_single_output(self) -> None:
        mlp = MLP(2, [4, 1])
        out = mlp([Value(1.0), Value(2.0)])
        assert isinstance(out, Value)

    def test_mlp_forward_multi_output(self) -> None:
        mlp = MLP(2, [4, 3])
        out = mlp([1.0, 2.0])
        assert isinstance(out, list) and len(out) == 3

    def test_forward_input_mismatch(self) -> None:
        mlp = create_network([2, 3, 1])
        with pytest.raises(DimensionMismatchError):
            mlp([1.0, 2.0, 3.0])

    def test_mlp_parameters(self) -> None:
        mlp = MLP(2, [3, 1])
        # Layer 1: 3 * (2 + 1) = 9, Layer 2: 1 * (3 + 1) = 4
        assert len(mlp.parameters()) == 13

    def test_parameter_order(self) -> None:
        """Layer, then neuron, then weights by index, bias last."""
        mlp = MLP(2, [2, 1])
        expected = []
        for layer in mlp.layers:
            for n in layer.neurons:
                expected.extend(n.w)
                expected.append(n.b)
        params = mlp.parameters()
        assert all(p is e for p, e in zip(params, expected))
        assert params == mlp.parameters()

    def test_parameter_labels(self) -> None:
        mlp = MLP(2, [2, 1])
        labels = [p.label for p in mlp.parameters()]
        assert labels[:3] == ['L1.n0.w0', 'L1.n0.w1', 'L1.n0.b']
        assert labels[-1] == 'L2.n0.b'

    def test_seeded_construction_reproducible(self) -> None:
        a = MLP(2, [4, 1], rng=42)
        b = MLP(2, [4, 1], rng=42)
        assert [p.data for p in a.parameters()] == [p.data for p in b.parameters()]

    def test_biases_start_at_zero(self) -> None:
        mlp = MLP(3, [4, 2])
        assert all(n.b.data == 0.0 for layer in mlp.layers for n in layer.neurons)

    def test_mlp_backward(self) -> None:
        mlp = MLP(2, [3, 1], activations='tanh', rng=0)
        out = mlp([Value(1.0), Value(2.0)])
        out.backward()
        assert any(p.grad != 0.0 for p in mlp.parameters())

    def test_zero_grad(self) -> None:
        mlp = MLP(2, [3, 1], rng=0)
        mlp([1.0, 2.0]).backward()
        mlp.zero_gradients()
        for p in mlp.parameters():
            assert p.grad == 0.0

    def test_zero_then_backward_twice(self) -> None:
        mlp = MLP(2, [3, 1], activations='tanh', rng=5)
        loss = mse_loss(mlp([0.3, -0.8]), 1.0)

        mlp.zero_grad()
        loss.backward()
        once = [p.grad for p in mlp.parameters()]

        mlp.zero_grad()
        loss.backward()
        assert [p.grad for p in mlp.parameters()] == once

        loss.backward()
        for p, g in zip(mlp.parameters(), once):
            assert_close(p.grad, 2 * g)

    def test_topological_order_over_network_graph(self) -> None:
        mlp = MLP(2, [3, 2, 1], activations='sigmoid', rng=1)
        loss = mae_loss(mlp([0.5, 1.5]), 0.2)
        topo = topological_sort(loss)
        index = {id(n): i for i, n in enumerate(topo)}
        for node in topo:
            for child in node.operands:
                assert index[id(child)] < index[id(node)]
        param_ids = {id(p) for p in mlp.parameters()}
        assert param_ids <= set(index)

    def test_get_activations_before_forward(self) -> None:
        mlp = MLP(1, [2, 1])
        with pytest.raises(StateError):
            mlp.get_activations()

    def test_get_activations(self) -> None:
        mlp = MLP(2, [3, 1], rng=0)
        out = mlp([1.0, -1.0])
        acts = mlp.get_activations()
        assert [len(a) for a in acts] == [2, 3, 1]
        assert acts[0][0].data == 1.0
        assert acts[-1][0] is out

    def test_get_activations_unchanged_by_failed_forward(self) -> None:
        mlp = MLP(2, [3, 1], rng=0)
        mlp([1.0, -1.0])
        with pytest.raises(DimensionMismatchError):
            mlp([1.0])
        assert len(mlp.get_activations()[0]) == 2

    def test_get_state(self) -> None:
        mlp = MLP(2, [3, 1], rng=0)
        out = mlp([1.0, -1.0])
        loss = mse_loss(out, 0.5)
        loss.backward()
        state = mlp.get_state(loss)

        assert state.loss == loss.data
        assert len(state.layers) == 2
        first = state.layers[0]
        assert first.weights.shape == (2, 3)
        assert first.weight_gradients.shape == (2, 3)
        assert first.weights[1, 2] == mlp.layers[0].neurons[2].w[1].data
        assert first.bias_gradients[0] == mlp.layers[0].neurons[0].b.grad
        assert state.layers[-1].outputs[0] == out.data
        assert np.array_equal(state.activations()[0], np.array([1.0, -1.0]))

    def test_get_state_before_forward(self) -> None:
        state = MLP(1, [2, 1], rng=0).get_state()
        assert np.isnan(state.inputs).all()
        assert np.isnan(state.layers[0].outputs).all()
        assert state.loss is None

    def test_clone(self) -> None:
        mlp = MLP(2, [3, 1], activations='tanh', rng=0)
        twin = mlp.clone()
        assert [p.data for p in twin.parameters()] == [p.data for p in mlp.parameters()]
        assert twin.parameters()[0] is not mlp.parameters()[0]
        assert [l.activation for l in twin.layers] == [l.activation for l in mlp.layers]

        twin.parameters()[0].data += 1.0
        assert twin.parameters()[0].data != mlp.parameters()[0].data

    def test_for_regression(self) -> None:
        mlp = MLP.for_regression([4, 2])
        assert mlp.widths == [1, 4, 2, 1]
        assert mlp.layers[-1].activation is Activation.LINEAR


class TestTopology:

    def test_single_width_rejected(self) -> None:
        with pytest.raises(InvalidTopologyError):
            create_network([2])

    def test_empty_widths_rejected(self) -> None:
        with pytest.raises(InvalidTopologyError):
            create_network([])

    def test_non_positive_width_rejected(self) -> None:
        with pytest.raises(InvalidTopologyError):
            create_network([2, 0, 1])

    def test_from_layers_checks_adjacency(self) -> None:
        with pytest.raises(InvalidTopologyError):
            MLP.from_layers([Layer(2, 3), Layer(4, 1)])

    def test_from_layers(self) -> None:
        mlp = MLP.from_layers([Layer(2, 3), Layer(3, 1, activation='linear')])
        assert mlp.widths == [2, 3, 1]
        assert isinstance(mlp([1.0, 2.0]), Value)


# =============================================================================
# Losses and Training Step
# =============================================================================

class TestLosses:

    def test_mse(self) -> None:
        assert mse_loss(Value(6.0), 10.0).data == 16.0

    def test_mae(self) -> None:
        assert mae_loss(Value(6.0), 10.0).data == 4.0
        assert mae_loss(Value(10.0), 6.0).data == 4.0

    def test_mae_gradient_is_sign(self) -> None:
        p = Value(6.0)
        mae_loss(p, 10.0).backward()
        assert p.grad == -1.0

    def test_calculate_loss_dispatch(self) -> None:
        assert calculate_loss(Value(1.0), 3.0, 'mse').data == 4.0
        assert calculate_loss(Value(1.0), 3.0, LossKind.MAE).data == 2.0

    def test_unknown_loss(self) -> None:
        with pytest.raises(ValueError):
            calculate_loss(Value(1.0), 3.0, 'huber')


class TestScenarios:

    def test_identity_network_end_to_end(self) -> None:
        """[1, 1] linear network, w = 2, b = 0, x = 3, target 10."""
        mlp = create_network([1, 1], activations='linear')
        neuron = mlp.layers[0].neurons[0]
        neuron.w[0].data = 2.0
        neuron.b.data = 0.0

        mlp.zero_grad()
        out = mlp([3.0])
        assert out.data == 6.0

        loss = mse_loss(out, 10.0)
        assert loss.data == 16.0

        loss.backward()
        assert neuron.w[0].grad == -24.0
        assert neuron.b.grad == -8.0

    def test_sgd_step(self) -> None:
        w = Value(1.0)
        w.grad = 0.1
        SGD([w], lr=0.1).step()
        assert_close(w.data, 0.99)

    def test_sgd_clip(self) -> None:
        w = Value(1.0)
        w.grad = -24.0
        SGD([w], lr=0.1, clip=1.0).step()
        assert_close(w.data, 1.1)

    def test_sgd_skips_nan_gradient(self, caplog) -> None:
        """A NaN gradient leaves the parameter alone instead of clamping to +clip."""
        w = Value(1.0, label='w')
        v = Value(1.0)
        w.grad = float('nan')
        v.grad = 2.0
        with caplog.at_level(logging.WARNING, logger='scalargrad.nn'):
            SGD([w, v], lr=0.1, clip=1.0).step()
        assert w.data == 1.0
        assert_close(v.data, 0.9)
        assert 'NaN' in caplog.text

    def test_sgd_rejects_bad_lr(self) -> None:
        with pytest.raises(ValueError):
            SGD([], lr=0.0)

    def test_training_reduces_loss(self) -> None:
        X = [[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]
        y = [0.0, 1.0, 1.0, 0.0]

        mlp = MLP(2, [4, 1], activations='tanh', rng=42)
        optimizer = SGD(mlp.parameters(), lr=0.05)

        def epoch_loss() -> float:
            return sum(mse_loss(mlp(x), t).data for x, t in zip(X, y))

        initial_loss = epoch_loss()
        for _ in range(100):
            for x, t in zip(X, y):
                optimizer.zero_grad()
                mse_loss(mlp(x), t).backward()
                optimizer.step()

        assert epoch_loss() < initial_loss
