from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Type

import numpy as np
from sklearn.dummy import DummyRegressor
from sklearn.linear_model import ElasticNetCV, LinearRegression
from sklearn.neural_network import MLPRegressor
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import PolynomialFeatures
from sklearn.svm import SVR

from infinity_flow.errors import ConfigurationError


class RegressionBackend(ABC):
    """
    Uniform capability interface for regression algorithms.

    - probe(): raise ConfigurationError if an optional dependency is missing
    - fit(): train on backbone features -> exploratory values
    - predict(): apply a fitted model to backbone features

    Backends are stateless and picklable; fitted state lives in the returned
    model handle.
    """

    backend_name: str = ""
    default_params: Mapping[str, Any] = {}

    def probe(self) -> None:
        """Check that the backend can run. Default: always available."""

    def merged_params(self, params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        merged = dict(self.default_params)
        merged.update(params or {})
        return merged

    @abstractmethod
    def fit(self, x: np.ndarray, y: np.ndarray, params: Optional[Mapping[str, Any]] = None, seed: Optional[int] = None) -> Any:
        """Train and return a model handle."""

    def predict(self, model: Any, x: np.ndarray) -> np.ndarray:
        return np.asarray(model.predict(x), dtype=np.float64).reshape(-1)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def _with_degree(estimator, degree: int):
    """Prefix a polynomial expansion when degree > 1."""
    if degree > 1:
        return make_pipeline(PolynomialFeatures(degree=degree, include_bias=False), estimator)
    return estimator


class LinearBackend(RegressionBackend):
    """Ordinary least squares, optionally on polynomial features."""
    backend_name = "linear"
    default_params = {"degree": 1}

    def fit(self, x, y, params=None, seed=None):
        params = self.merged_params(params)
        degree = int(params.pop("degree"))
        return _with_degree(LinearRegression(**params), degree).fit(x, y)


class LassoBackend(RegressionBackend):
    """Cross-validated elastic net (pure lasso by default)."""
    backend_name = "lasso"
    default_params = {"degree": 2, "l1_ratio": 1.0, "cv": 5}

    def fit(self, x, y, params=None, seed=None):
        params = self.merged_params(params)
        degree = int(params.pop("degree"))
        model = ElasticNetCV(random_state=seed, **params)
        return _with_degree(model, degree).fit(x, y)


class SVMBackend(RegressionBackend):
    """Epsilon support vector regression."""
    backend_name = "svm"
    default_params = {"kernel": "rbf", "C": 1.0, "epsilon": 0.1}

    def fit(self, x, y, params=None, seed=None):
        return SVR(**self.merged_params(params)).fit(x, y)


class NeuralNetworkBackend(RegressionBackend):
    """Multi-layer perceptron regressor."""
    backend_name = "neural_network"
    default_params = {
        "hidden_layer_sizes": (128, 64, 32),
        "max_iter": 200,
        "early_stopping": True,
    }

    def fit(self, x, y, params=None, seed=None):
        params = self.merged_params(params)
        params["hidden_layer_sizes"] = tuple(params["hidden_layer_sizes"])
        return MLPRegressor(random_state=seed, **params).fit(x, y)


class XGBoostBackend(RegressionBackend):
    """Gradient boosted trees (requires the optional ``xgboost`` package)."""
    backend_name = "xgboost"
    default_params = {"n_estimators": 500, "learning_rate": 0.05}

    def probe(self) -> None:
        try:
            import xgboost  # noqa: F401
        except ImportError as e:
            raise ConfigurationError(
                "The xgboost backend requires the 'xgboost' package: pip install infinity-flow[xgboost]"
            ) from e

    def fit(self, x, y, params=None, seed=None):
        import xgboost

        params = self.merged_params(params)
        params.setdefault("n_jobs", 1)
        model = xgboost.XGBRegressor(random_state=seed or 0, **params)
        return model.fit(x, y)


class MeanBackend(RegressionBackend):
    """Predicts the training mean; a baseline and a smoke-test backend."""
    backend_name = "mean"

    def fit(self, x, y, params=None, seed=None):
        return DummyRegressor(strategy="mean").fit(x, y)


BACKENDS: Dict[str, Type[RegressionBackend]] = {
    cls.backend_name: cls
    for cls in (LinearBackend, LassoBackend, SVMBackend, NeuralNetworkBackend, XGBoostBackend, MeanBackend)
}


def get_backend(backend: Any) -> RegressionBackend:
    """Resolve a backend name, class or instance to an instance."""
    if isinstance(backend, RegressionBackend):
        return backend
    if isinstance(backend, type) and issubclass(backend, RegressionBackend):
        return backend()
    if isinstance(backend, str):
        key = backend.strip().lower()
        if key not in BACKENDS:
            raise ConfigurationError(
                f"Unknown regression backend '{backend}'. Available: {sorted(BACKENDS)}"
            )
        return BACKENDS[key]()
    raise ConfigurationError(f"Cannot use {backend!r} as a regression backend")
