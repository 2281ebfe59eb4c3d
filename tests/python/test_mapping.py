"""
Tests for the control-horizon mapping.

Tests covering:
1. Operator shapes and tail-hold replication
2. Input and state scaling
3. Decision vector unwrapping
"""

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st


def make_mapping(nx=2, nu=1, ph=4, ch=2):
    from mpclib import Dimensions, Mapping

    mapping = Mapping()
    mapping.initialize(Dimensions(nx=nx, nu=nu, ndu=0, ny=1, ph=ph, ch=ch))
    return mapping


class TestOperators:
    """Test Iz2u / Iu2z."""

    def test_shapes(self):
        """Operator shapes."""
        mapping = make_mapping()

        assert mapping.Iz2u.shape == (4, 2)
        assert mapping.Iu2z.shape == (2, 4)

    def test_replication_counts(self):
        """Last move covers the remaining steps."""
        mapping = make_mapping(ph=7, ch=3)

        m = mapping.replication_counts()
        np.testing.assert_array_equal(m, [1, 1, 5])
        assert m.sum() == 7

    def test_tail_hold(self):
        """The last control move is held to the end of the horizon."""
        mapping = make_mapping()

        u = mapping.Iz2u @ np.array([1.0, 2.0])
        np.testing.assert_allclose(u, [1.0, 2.0, 2.0, 2.0])

    def test_tail_hold_multi_input(self):
        """Each input channel is held independently."""
        mapping = make_mapping(nu=2, ph=3, ch=2)

        z = np.array([1.0, -1.0, 2.0, -2.0])
        u = (mapping.Iz2u @ z).reshape(3, 2)
        np.testing.assert_allclose(u, [[1, -1], [2, -2], [2, -2]])

    def test_inverse_picks_first_step_of_each_move(self):
        """Iu2z reads the first prediction step of each move."""
        mapping = make_mapping()

        z = mapping.Iu2z @ np.array([1.0, 2.0, 3.0, 4.0])
        np.testing.assert_allclose(z, [1.0, 2.0])
        np.testing.assert_allclose(mapping.Iu2z @ mapping.Iz2u, np.eye(2))

    def test_full_control_horizon(self):
        """ch == ph gives identity operators."""
        mapping = make_mapping(ph=3, ch=3)

        np.testing.assert_array_equal(mapping.Iz2u, np.eye(3))
        np.testing.assert_array_equal(mapping.Iu2z, mapping.Iz2u.T)

    def test_not_initialized(self):
        """Accessing operators before initialize raises."""
        from mpclib import Mapping, NotInitializedError

        with pytest.raises(NotInitializedError):
            Mapping().Iz2u

    def test_operators_are_copies(self):
        """Editing a returned operator leaves the mapping unchanged."""
        mapping = make_mapping()

        Iz2u = mapping.Iz2u
        Iz2u[:] = 7.0
        mapping.Iu2z[:] = 7.0

        np.testing.assert_allclose(mapping.Iz2u @ np.array([1.0, 2.0]), [1.0, 2.0, 2.0, 2.0])
        np.testing.assert_allclose(mapping.Iu2z @ mapping.Iz2u, np.eye(2))


class TestScaling:
    """Test input/state scaling."""

    def test_input_scaling(self):
        """Input scaling is applied by Iz2u and inverted by Iu2z."""
        mapping = make_mapping()
        mapping.set_input_scaling([2.0])

        np.testing.assert_allclose(mapping.Iz2u @ np.ones(2), np.full(4, 2.0))
        np.testing.assert_allclose(mapping.Iu2z @ np.full(4, 2.0), np.ones(2))
        np.testing.assert_allclose(mapping.Sz2u, [[2.0]])
        np.testing.assert_allclose(mapping.Su2z, [[0.5]])

    def test_state_scaling_inverse(self):
        """The inverse state scaling is cached."""
        mapping = make_mapping()
        mapping.set_state_scaling([2.0, 4.0])

        np.testing.assert_allclose(mapping.inverse_state_scaling, [0.5, 0.25])

    def test_zero_scaling(self):
        """Zero scale factors are rejected."""
        from mpclib import InvalidInputError

        mapping = make_mapping()
        with pytest.raises(InvalidInputError):
            mapping.set_input_scaling([0.0])
        with pytest.raises(InvalidInputError):
            mapping.set_state_scaling([1.0, 0.0])

    def test_wrong_scaling_size(self):
        """Scale vectors must match the channel count."""
        from mpclib import DimensionError

        mapping = make_mapping()
        with pytest.raises(DimensionError):
            mapping.set_state_scaling([1.0, 2.0, 3.0])


class TestUnwrap:
    """Test unwrap_vector."""

    def test_trajectories(self):
        """States, held inputs and slack are recovered."""
        mapping = make_mapping()
        x0 = np.array([0.5, -0.5])
        x = np.concatenate([np.arange(8.0), [10.0, 20.0], [0.3]])

        X, U, slack = mapping.unwrap_vector(x, x0)

        assert X.shape == (5, 2)
        assert U.shape == (5, 1)
        np.testing.assert_allclose(X[0], x0)
        np.testing.assert_allclose(X[1:], np.arange(8.0).reshape(4, 2))
        np.testing.assert_allclose(U[:, 0], [10.0, 20.0, 20.0, 20.0, 20.0])
        assert slack == pytest.approx(0.3)

    def test_state_scaling_applied(self):
        """Predicted states are returned in physical units."""
        mapping = make_mapping()
        mapping.set_state_scaling([2.0, 4.0])
        x = np.concatenate([np.ones(8), [0.0, 0.0], [0.0]])

        X, _, _ = mapping.unwrap_vector(x, np.zeros(2))
        np.testing.assert_allclose(X[1:], np.tile([2.0, 4.0], (4, 1)))

    def test_wrong_length(self):
        """Decision vectors of the wrong length are rejected."""
        from mpclib import DimensionError

        mapping = make_mapping()
        with pytest.raises(DimensionError):
            mapping.unwrap_vector(np.zeros(5), np.zeros(2))


@st.composite
def horizons(draw):
    ph = draw(st.integers(min_value=1, max_value=12))
    ch = draw(st.integers(min_value=1, max_value=ph))
    nu = draw(st.integers(min_value=1, max_value=3))
    scaling = draw(st.lists(
        st.floats(min_value=0.1, max_value=10.0), min_size=nu, max_size=nu,
    ))
    return ph, ch, nu, np.array(scaling)


class TestProperties:
    """Mapping invariants over random horizons."""

    @settings(max_examples=50, deadline=None)
    @given(horizons())
    def test_mapping_invariants(self, sizes):
        """Counts sum to ph, Iu2z inverts Iz2u, every step gets one move."""
        ph, ch, nu, _ = sizes
        mapping = make_mapping(nu=nu, ph=ph, ch=ch)

        assert mapping.replication_counts().sum() == ph
        np.testing.assert_allclose(mapping.Iu2z @ mapping.Iz2u, np.eye(ch * nu))
        np.testing.assert_array_equal(mapping.Iz2u.sum(axis=1), np.ones(ph * nu))

    @settings(max_examples=50, deadline=None)
    @given(horizons())
    def test_block_structure(self, sizes):
        """Move j fills m[j] consecutive row blocks with the scaling matrix."""
        ph, ch, nu, scaling = sizes
        mapping = make_mapping(nu=nu, ph=ph, ch=ch)
        mapping.set_input_scaling(scaling)

        Iz2u = mapping.Iz2u
        S = np.diag(scaling)
        m = mapping.replication_counts()
        starts = np.concatenate([[0], np.cumsum(m)[:-1]])

        for j in range(ch):
            for i in range(ph):
                block = Iz2u[i * nu:(i + 1) * nu, j * nu:(j + 1) * nu]
                if starts[j] <= i < starts[j] + m[j]:
                    np.testing.assert_array_equal(block, S)
                else:
                    np.testing.assert_array_equal(block, np.zeros((nu, nu)))
        np.testing.assert_allclose(mapping.Iu2z @ Iz2u, np.eye(ch * nu))
