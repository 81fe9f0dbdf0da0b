"""
End-to-end sampling tests.

Posterior checks fit Normal(mu, sigma) to 300 draws from Normal(0, 1) and
expect posterior means within 0.1 of mu = 0, sigma = 1.
"""

from typing import NamedTuple

import pytest
import numpy as np
import jax.numpy as jnp
import jax.random as random
import numpyro.distributions as dist

from jaxmh import (
    CapabilityError,
    ConfigurationError,
    DensityModel,
    DifferentiableDensityModel,
    LogDensityModel,
    MetropolisHastings,
    RandomWalkProposal,
    SymmetricRandomWalkProposal,
    SymmetricStaticProposal,
    StaticMH,
    RWMH,
    MALA,
    ExecutionMode,
    langevin_proposal,
    sample,
)


N_LONG = 100_000


def _assert_posterior(chain, names=('param_1', 'param_2'), atol=0.1):
    assert chain.mean(names[0]) == pytest.approx(0.0, abs=atol)
    assert chain.mean(names[1]) == pytest.approx(1.0, abs=atol)


# =============================================================================
# POSTERIOR RECOVERY
# =============================================================================

class TestPosteriorRecovery:
    """Long chains recover the (mu, sigma) posterior."""

    def test_static_list(self, normal_model):
        kernel = StaticMH([dist.Normal(0.0, 1.0), dist.Normal(0.0, 1.0)])
        chain = sample(normal_model, kernel, N_LONG, rng_seed=1)
        _assert_posterior(chain)

    def test_static_multivariate(self, normal_model):
        kernel = StaticMH(dist.MultivariateNormal(jnp.zeros(2), jnp.eye(2)))
        chain = sample(normal_model, kernel, N_LONG, rng_seed=2)
        _assert_posterior(chain)

    def test_static_dimension(self, normal_model):
        chain = sample(normal_model, StaticMH(2), N_LONG, rng_seed=3)
        _assert_posterior(chain)

    def test_random_walk_list(self, normal_model):
        kernel = RWMH([dist.Normal(0.0, 1.0), dist.Normal(0.0, 1.0)])
        chain = sample(normal_model, kernel, N_LONG, rng_seed=4)
        _assert_posterior(chain)

    def test_random_walk_dimension(self, normal_model):
        chain = sample(normal_model, RWMH(2), N_LONG, rng_seed=5)
        _assert_posterior(chain)

    def test_named_parameters(self, normal_data):
        data = jnp.asarray(normal_data)

        def logdensity(p):
            in_support = p['sigma'] >= 0
            sigma = jnp.where(in_support, p['sigma'], 1.0)
            ll = jnp.sum(dist.Normal(p['mu'], sigma).log_prob(data))
            return jnp.where(in_support, ll, -jnp.inf)

        kernel = RWMH({'mu': dist.Normal(0.0, 0.1), 'sigma': dist.Normal(0.0, 0.1)})
        chain = sample(DensityModel(logdensity), kernel, 20_000, rng_seed=6,
                       initial_params={'mu': 0.5, 'sigma': 1.5})
        assert chain.names() == ['mu', 'sigma']
        _assert_posterior(chain, names=('mu', 'sigma'))

    def test_scalar_parameter(self, normal_data):
        data = jnp.asarray(normal_data)
        model = DensityModel(lambda x: jnp.sum(dist.Normal(x, 1.0).log_prob(data)))
        chain = sample(model, StaticMH(dist.Normal(0.0, 1.0)), N_LONG, rng_seed=7)
        assert chain.mean('param_1') == pytest.approx(0.0, abs=0.1)

    def test_tuple_of_proposals_with_named_tuple(self, normal_data):
        class Theta(NamedTuple):
            mu: float
            sigma: float

        data = jnp.asarray(normal_data)

        def logdensity(theta):
            in_support = theta.sigma >= 0
            sigma = jnp.where(in_support, theta.sigma, 1.0)
            ll = jnp.sum(dist.Normal(theta.mu, sigma).log_prob(data))
            return jnp.where(in_support, ll, -jnp.inf)

        p = RandomWalkProposal(dist.Normal(0.0, 0.1))
        chain = sample(DensityModel(logdensity), MetropolisHastings((p, p)), 20_000,
                       rng_seed=8, initial_params=Theta(0.5, 1.5))
        assert isinstance(chain.params, Theta)
        _assert_posterior(chain)


# =============================================================================
# SYMMETRIC PROPOSALS WITHOUT DENSITIES
# =============================================================================

class TestDensityFreeProposals:
    """Symmetric proposals only need to sample."""

    def _target(self):
        return DensityModel(lambda x: dist.Normal(5.0, 0.7).log_prob(x))

    def test_symmetric_random_walk(self, custom_normal):
        kernel = MetropolisHastings(SymmetricRandomWalkProposal(custom_normal()))
        chain = sample(self._target(), kernel, N_LONG, rng_seed=11)
        assert chain.mean('param_1') == pytest.approx(5.0, abs=0.05)
        assert chain.std('param_1') == pytest.approx(0.7, abs=0.05)

    def test_symmetric_state_dependent_static(self, custom_normal):
        kernel = MetropolisHastings(SymmetricStaticProposal(lambda x=0.0: custom_normal(x)))
        chain = sample(self._target(), kernel, N_LONG, rng_seed=12)
        assert chain.mean('param_1') == pytest.approx(5.0, abs=0.05)
        assert chain.std('param_1') == pytest.approx(0.7, abs=0.05)

    def test_asymmetric_fails_on_first_step(self, custom_normal):
        kernel = MetropolisHastings(RandomWalkProposal(custom_normal()))
        with pytest.raises(CapabilityError):
            sample(self._target(), kernel, 10, rng_seed=13)


# =============================================================================
# OUTPUT SHAPE AND BOOKKEEPING
# =============================================================================

class TestOutput:
    """Chain layout, record keys, iteration numbers."""

    def test_record_keys(self, custom_normal):
        m1 = DensityModel(lambda x: dist.Normal(x, 1.0).log_prob(1.0))
        c1 = sample(m1, MetropolisHastings(RandomWalkProposal(dist.Normal(0.0, 1.0))), 100)
        assert list(c1.to_records()[0]) == ['param_1', 'lp']

        def m2_logdensity(x):
            scale = jnp.where(x[1] > 0, x[1], 1.0)
            return jnp.where(x[1] > 0, dist.Normal(x[0], scale).log_prob(1.0), -jnp.inf)

        m2 = DensityModel(m2_logdensity)
        c2 = sample(m2, StaticMH([dist.Normal(0.0, 1.0), dist.InverseGamma(2.0, 3.0)]), 100)
        assert list(c2.to_records()[0]) == ['param_1', 'param_2', 'lp']

        def m3_logdensity(p):
            scale = jnp.where(p['b'] > 0, p['b'], 1.0)
            return jnp.where(p['b'] > 0, dist.Normal(p['a'], scale).log_prob(1.0), -jnp.inf)

        m3 = DensityModel(m3_logdensity)
        c3 = sample(m3, StaticMH({'a': dist.Normal(0.0, 1.0), 'b': dist.InverseGamma(2.0, 3.0)}), 100)
        assert list(c3.to_records()[0]) == ['a', 'b', 'lp']

        m4 = DensityModel(lambda x: dist.Normal(x, 1.0).log_prob(1.0))
        c4 = sample(m4, MetropolisHastings(SymmetricStaticProposal(lambda x=0.0: custom_normal(x))), 100)
        assert list(c4.to_records()[0]) == ['param_1', 'lp']

    def test_param_names(self, normal_model):
        chain = sample(normal_model, StaticMH(2), 50, param_names=['mu', 'sigma'])
        assert chain.names() == ['mu', 'sigma']
        assert chain['mu'].shape == (50,)

    def test_initial_params_are_first_sample(self, normal_model):
        val = [0.4, 1.2]
        kernel = StaticMH([dist.Normal(0.0, 1.0), dist.Normal(0.0, 1.0)])
        chain = sample(normal_model, kernel, 10, initial_params=val)
        first = chain[0]
        np.testing.assert_allclose(np.asarray(first.params), val, rtol=1e-6)
        assert bool(first.accepted)

    def test_initial_params_shared_across_chains(self, normal_model):
        chain = sample(normal_model, RWMH(2), 5, n_chains=3, initial_params=jnp.array([0.1, 0.9]))
        for c in range(3):
            np.testing.assert_allclose(chain.transition(0, chain=c).params, [0.1, 0.9], rtol=1e-6)

    @pytest.mark.parametrize("kernel", [
        StaticMH(2),
        RWMH(2),
        StaticMH(dist.MultivariateNormal(jnp.zeros(2), jnp.eye(2))),
    ])
    def test_list_initial_params_on_vector_proposals(self, normal_model, kernel):
        chain = sample(normal_model, kernel, 200, initial_params=[0.1, 0.9])
        assert chain.flat_params().shape == (1, 200, 2)
        np.testing.assert_allclose(chain[0].params, [0.1, 0.9], rtol=1e-6)

    def test_list_initial_params_mala(self, differentiable_normal_model):
        kernel = MALA(langevin_proposal(1e-3))
        chain = sample(differentiable_normal_model, kernel, 200, initial_params=[1.0, 1.0])
        assert chain.flat_params().shape == (1, 200, 2)
        np.testing.assert_allclose(chain[0].params, [1.0, 1.0])

    def test_discard_and_thinning_iterations(self, normal_model):
        chain = sample(normal_model, StaticMH(2), 10_000, discard_initial=25, thinning=4)
        assert len(chain) == 10_000
        np.testing.assert_array_equal(chain.iterations, np.arange(26, 26 + 4 * 10_000, 4))

    def test_thinned_chain_is_subsequence(self, normal_model):
        """Same key: the thinned run keeps exactly the listed raw iterations."""
        key = random.PRNGKey(21)
        kernel = RWMH(2)
        thinned = sample(normal_model, kernel, 200, key=key, discard_initial=25, thinning=4)
        full = sample(normal_model, kernel, thinned.run_params.total_iterations, key=key)

        np.testing.assert_array_equal(full.iterations, np.arange(1, full.n_samples + 1))
        raw = np.asarray(full.params)[0, thinned.iterations - 1]
        np.testing.assert_allclose(np.asarray(thinned.params)[0], raw, rtol=1e-6)

    def test_n_samples_one(self, normal_model):
        chain = sample(normal_model, StaticMH(2), 1, discard_initial=3)
        assert len(chain) == 1
        np.testing.assert_array_equal(chain.iterations, [4])

    def test_reproducible(self, normal_model):
        a = sample(normal_model, RWMH(2), 500, rng_seed=99)
        b = sample(normal_model, RWMH(2), 500, rng_seed=99)
        np.testing.assert_array_equal(a.flat_params(), b.flat_params())

    def test_iteration_over_transitions(self, normal_model):
        chain = sample(normal_model, StaticMH(2), 5)
        records = list(chain)
        assert len(records) == 5
        assert records[0].params.shape == (2,)

    def test_unknown_column(self, normal_model):
        chain = sample(normal_model, StaticMH(2), 5)
        with pytest.raises(KeyError):
            chain['nope']


# =============================================================================
# MALA
# =============================================================================

class TheNormalLogDensity:
    """Log-density problem for a zero-mean bivariate normal."""

    def __init__(self, cov):
        self.prec = jnp.linalg.inv(cov)

    def logdensity(self, x):
        return -0.5 * x @ self.prec @ x

    def dimension(self):
        return 2

    def capabilities(self):
        return 1

    def logdensity_and_gradient(self, x):
        return self.logdensity(x), -(self.prec @ x)


class TestMALASampling:
    """Gradient-based sampling end to end."""

    def test_basic(self, differentiable_normal_model):
        s2 = 1e-3

        def proposal_fn(g):
            return dist.MultivariateNormal((s2 / 2) * g, s2 * jnp.eye(2))

        chain = sample(differentiable_normal_model, MALA(proposal_fn), 5_000,
                       discard_initial=100, initial_params=jnp.ones(2), rng_seed=31)
        _assert_posterior(chain)

    def test_correlated_gaussian(self):
        cov = jnp.array([[1.0, 0.5], [0.5, 1.0]])
        model = LogDensityModel(TheNormalLogDensity(cov))
        s2 = 0.5

        def proposal_fn(g):
            return dist.MultivariateNormal((s2 / 2) * g, s2 * jnp.eye(2))

        chain = sample(model, MALA(proposal_fn), 200_000, initial_params=jnp.zeros(2), rng_seed=32)
        flat = chain.flat_params()[0]
        np.testing.assert_allclose(flat.mean(axis=0), [0.0, 0.0], atol=0.1)
        np.testing.assert_allclose(np.cov(flat.T), np.asarray(cov), atol=0.2)

    def test_requires_initial_params_before_running(self):
        calls = []

        def logdensity(x):
            calls.append(x)
            return -0.5 * jnp.sum(x ** 2)

        model = DifferentiableDensityModel(logdensity)
        with pytest.raises(ConfigurationError):
            sample(model, MALA(lambda g: dist.Normal(0.5 * g, 1.0).to_event(1)), 10)
        assert calls == []

    def test_without_gradient(self):
        model = DensityModel(lambda x: -0.5 * jnp.sum(x ** 2))
        with pytest.raises(CapabilityError):
            sample(model, MALA(lambda g: dist.Normal(0.5 * g, 1.0).to_event(1)), 10,
                   initial_params=jnp.ones(2))


# =============================================================================
# MULTIPLE CHAINS
# =============================================================================

class TestExecutionModes:
    """Independent chains under every execution mode."""

    @pytest.mark.parametrize("execution", list(ExecutionMode))
    def test_modes(self, normal_model, execution):
        kernel = RWMH([dist.Normal(0.0, 0.1), dist.Normal(0.0, 0.1)])
        chain = sample(normal_model, kernel, 10_000, n_chains=4, execution=execution,
                       discard_initial=500, rng_seed=41)
        assert chain.n_chains == 4
        assert chain.n_samples == 10_000
        assert chain.flat_params().shape == (4, 10_000, 2)
        assert chain['param_1'].shape == (4, 10_000)
        _assert_posterior(chain)

    def test_chains_are_independent(self, normal_model):
        chain = sample(normal_model, RWMH(2), 100, n_chains=2)
        flat = chain.flat_params()
        assert not np.array_equal(flat[0], flat[1])

    def test_modes_agree_for_same_key(self, normal_model):
        key = random.PRNGKey(5)
        serial = sample(normal_model, StaticMH(2), 50, n_chains=3, key=key, execution='serial')
        threads = sample(normal_model, StaticMH(2), 50, n_chains=3, key=key, execution='threads')
        np.testing.assert_allclose(serial.flat_params(), threads.flat_params(), rtol=1e-6)

    def test_acceptance_rate_per_chain(self, normal_model):
        chain = sample(normal_model, RWMH([dist.Normal(0.0, 0.1), dist.Normal(0.0, 0.1)]), 2_000,
                       n_chains=3, execution='vectorized')
        rates = chain.acceptance_rate
        assert rates.shape == (3,)
        assert np.all((rates > 0.0) & (rates < 1.0))
