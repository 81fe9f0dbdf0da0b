"""
Pytest configuration and shared fixtures for jaxmh tests.
"""

import pytest
import numpy as np
import jax
import jax.numpy as jnp
import numpyro.distributions as dist

from jaxmh import DensityModel, DifferentiableDensityModel


class CustomNormal:
    """
    Normal distribution that can only be sampled.

    Has no log_prob, so it is only usable in symmetric proposals.
    """

    def __init__(self, mu=0.0, sigma=1.0):
        self.mu = mu
        self.sigma = sigma

    def sample(self, key, sample_shape=()):
        return self.mu + self.sigma * jax.random.normal(key, sample_shape)


class NoDensityCalls:
    """Normal whose log_prob must never be called (fails the test if it is)."""

    def __init__(self, mu=0.0):
        self.mu = mu

    def sample(self, key, sample_shape=()):
        return self.mu + jax.random.normal(key, sample_shape)

    def log_prob(self, value):
        raise AssertionError("log_prob was evaluated for a symmetric proposal")


def normal_fit_logdensity(data):
    """
    Log likelihood of Normal(theta[0], theta[1]) for data, -inf for theta[1] < 0.
    """
    data = jnp.asarray(data)

    def logdensity(theta):
        mu, sigma = theta[0], theta[1]
        in_support = sigma >= 0
        safe_sigma = jnp.where(in_support, sigma, 1.0)
        ll = jnp.sum(dist.Normal(mu, safe_sigma).log_prob(data))
        return jnp.where(in_support, ll, -jnp.inf)

    return logdensity


@pytest.fixture(scope="session")
def normal_data():
    """300 draws from Normal(0, 1)."""
    return np.asarray(jax.random.normal(jax.random.PRNGKey(1234), (300,)))


@pytest.fixture
def normal_model(normal_data):
    """2-parameter (mu, sigma) model without gradient support."""
    return DensityModel(normal_fit_logdensity(normal_data), dim=2)


@pytest.fixture
def differentiable_normal_model(normal_data):
    """2-parameter (mu, sigma) model with an autodiff gradient."""
    return DifferentiableDensityModel(normal_fit_logdensity(normal_data), dim=2)


@pytest.fixture
def custom_normal():
    """Factory for sample-only normal distributions."""
    return CustomNormal


@pytest.fixture
def no_density_calls():
    """Factory for distributions whose log_prob raises."""
    return NoDensityCalls

