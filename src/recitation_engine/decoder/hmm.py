"""Discrete-observation HMM decoding: Viterbi, Forward, Backward.

All lattices are natural-log probabilities. Zero probabilities in the
model are floored to LOG_FLOOR before the log, so they stay finite; the
only -inf that enters a lattice is the log-emission of an observation
symbol outside [0, num_symbols), which makes that step unscoreable.

Interface:
  model = HMMModel(transition_matrix=A, emission_matrix=B, initial_distribution=pi)
  decoder = HMMDecoder(model)
  result = decoder.decode([0, 1, 0])      # ViterbiResult
  total = decoder.likelihood([0, 1, 0])   # Forward log-likelihood
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from recitation_engine.errors import ConfigurationError, OperationCancelled

logger = logging.getLogger(__name__)

LOG_FLOOR = 1e-300


def log_add(a: float, b: float) -> float:
    """Numerically stable log(exp(a) + exp(b))."""
    if a == -math.inf:
        return b
    if b == -math.inf:
        return a
    hi, lo = (a, b) if a > b else (b, a)
    return hi + math.log1p(math.exp(lo - hi))


def safe_log(x):
    """log(max(x, LOG_FLOOR)) for scalars or arrays."""
    return np.log(np.maximum(x, LOG_FLOOR))


def _as_probability_array(name: str, values, ndim: int) -> np.ndarray:
    arr = np.array(values, dtype=np.float64)
    if arr.ndim != ndim:
        raise ConfigurationError(f"{name} must be {ndim}-D, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)) or np.any(arr < 0):
        raise ConfigurationError(f"{name} must contain finite, non-negative probabilities")
    return arr


def _check_normalized(name: str, arr: np.ndarray, tolerance: float) -> None:
    sums = np.atleast_1d(arr.sum(axis=-1))
    bad = np.nonzero(np.abs(sums - 1.0) > tolerance)[0]
    if len(bad):
        raise ConfigurationError(f"{name} rows must sum to 1 (+/- {tolerance}); offending rows: {list(bad)}")


@dataclass(frozen=True, eq=False)
class HMMModel:
    """Immutable discrete HMM. Arrays are stored read-only."""

    transition_matrix: np.ndarray  # (num_states, num_states)
    emission_matrix: np.ndarray  # (num_states, num_symbols)
    initial_distribution: np.ndarray  # (num_states,)
    tolerance: float = 1e-6

    log_transition: np.ndarray = field(init=False, repr=False, compare=False)
    log_emission: np.ndarray = field(init=False, repr=False, compare=False)
    log_initial: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        a = _as_probability_array("transition_matrix", self.transition_matrix, 2)
        b = _as_probability_array("emission_matrix", self.emission_matrix, 2)
        pi = _as_probability_array("initial_distribution", self.initial_distribution, 1)

        num_states = a.shape[0]
        if num_states == 0:
            raise ConfigurationError("num_states must be > 0")
        if a.shape != (num_states, num_states):
            raise ConfigurationError(f"transition_matrix must be square, got {a.shape}")
        if b.shape[0] != num_states or b.shape[1] == 0:
            raise ConfigurationError(
                f"emission_matrix must be ({num_states}, num_symbols > 0), got {b.shape}"
            )
        if pi.shape != (num_states,):
            raise ConfigurationError(f"initial_distribution must have {num_states} entries, got {pi.shape}")

        _check_normalized("transition_matrix", a, self.tolerance)
        _check_normalized("emission_matrix", b, self.tolerance)
        _check_normalized("initial_distribution", pi, self.tolerance)

        for name, arr in (
            ("transition_matrix", a),
            ("emission_matrix", b),
            ("initial_distribution", pi),
            ("log_transition", safe_log(a)),
            ("log_emission", safe_log(b)),
            ("log_initial", safe_log(pi)),
        ):
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @property
    def num_states(self) -> int:
        return self.transition_matrix.shape[0]

    @property
    def num_symbols(self) -> int:
        return self.emission_matrix.shape[1]

    @classmethod
    def uniform(cls, num_states: int, num_symbols: int) -> "HMMModel":
        """Uniform transitions, emissions and start distribution."""
        if num_states <= 0 or num_symbols <= 0:
            raise ConfigurationError("num_states and num_symbols must be > 0")
        return cls(
            transition_matrix=np.full((num_states, num_states), 1.0 / num_states),
            emission_matrix=np.full((num_states, num_symbols), 1.0 / num_symbols),
            initial_distribution=np.full(num_states, 1.0 / num_states),
        )

    @classmethod
    def left_to_right(
        cls,
        num_states: int,
        emission_matrix: np.ndarray,
        self_loop: float = 0.5,
    ) -> "HMMModel":
        """Left-to-right chain: stay with `self_loop`, else advance one state.

        The last state is absorbing. Decoding starts in state 0.
        """
        if num_states <= 0:
            raise ConfigurationError("num_states must be > 0")
        if not 0.0 <= self_loop <= 1.0:
            raise ConfigurationError(f"self_loop must be in [0, 1], got {self_loop}")
        a = np.zeros((num_states, num_states))
        for s in range(num_states - 1):
            a[s, s] = self_loop
            a[s, s + 1] = 1.0 - self_loop
        a[-1, -1] = 1.0
        pi = np.zeros(num_states)
        pi[0] = 1.0
        return cls(transition_matrix=a, emission_matrix=emission_matrix, initial_distribution=pi)


def gaussian_emissions(
    num_states: int,
    num_symbols: int = 256,
    variance: float = 400.0,
) -> np.ndarray:
    """Row-normalized Gaussian bumps over the symbol axis, one mean per state.

    State s is centered on symbol (s + 1) * num_symbols / num_states.
    """
    if num_states <= 0 or num_symbols <= 0:
        raise ConfigurationError("num_states and num_symbols must be > 0")
    if variance <= 0:
        raise ConfigurationError(f"variance must be > 0, got {variance}")
    symbols = np.arange(num_symbols)[None, :]
    means = (np.arange(num_states)[:, None] + 1) * num_symbols / num_states
    weights = np.exp(-0.5 * (symbols - means) ** 2 / variance)
    weights = np.maximum(weights, LOG_FLOOR)
    return weights / weights.sum(axis=1, keepdims=True)


@dataclass(frozen=True)
class ViterbiResult:
    """Most probable state path and its log-probability."""

    state_path: List[int]
    path_log_probability: float
    per_step_log_probability: List[float]


@dataclass(frozen=True, eq=False)
class ForwardResult:
    """alpha[t][s] = log P(o_0..o_t, q_t = s)."""

    alpha: np.ndarray
    total_log_likelihood: float


@dataclass(frozen=True, eq=False)
class BackwardResult:
    """beta[t][s] = log P(o_{t+1}..o_{T-1} | q_t = s)."""

    beta: np.ndarray
    total_log_likelihood: float


def _observation_array(observations: Sequence[int]) -> np.ndarray:
    obs = np.asarray(observations)
    if obs.size == 0:
        return np.zeros(0, dtype=np.int64)
    if obs.ndim != 1:
        raise ValueError(f"observations must be 1-D, got shape {obs.shape}")
    return obs.astype(np.int64)


def emission_log_lattice(observations: Sequence[int], model: HMMModel) -> np.ndarray:
    """log B[s][o_t] as (T, num_states); -inf rows for out-of-range symbols."""
    obs = _observation_array(observations)
    lattice = np.full((len(obs), model.num_states), -np.inf)
    valid = (obs >= 0) & (obs < model.num_symbols)
    if not np.all(valid):
        logger.warning(
            "%d of %d observations outside [0, %d); those steps score -inf",
            int(np.count_nonzero(~valid)),
            len(obs),
            model.num_symbols,
        )
    lattice[valid] = model.log_emission[:, obs[valid]].T
    return lattice


def _check_cancel(cancel: Optional[threading.Event], t: int, total: int, what: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"{what} cancelled at step {t} of {total}")


def viterbi(
    observations: Sequence[int],
    model: HMMModel,
    cancel: Optional[threading.Event] = None,
) -> ViterbiResult:
    """Most probable hidden-state path.

    Args:
        observations: Symbols in [0, num_symbols).
        model: Immutable HMM; only read.
        cancel: Optional event, checked once per time step.

    Returns:
        ViterbiResult; ([], -inf, []) for an empty sequence. Predecessor
        ties resolve to the lowest state index.
    """
    em = emission_log_lattice(observations, model)
    T, S = em.shape
    if T == 0:
        return ViterbiResult([], -math.inf, [])

    delta = np.empty((T, S))
    psi = np.zeros((T, S), dtype=np.int64)
    delta[0] = model.log_initial + em[0]
    states = np.arange(S)
    for t in range(1, T):
        _check_cancel(cancel, t, T, "Viterbi")
        scores = delta[t - 1][:, None] + model.log_transition  # (from, to)
        psi[t] = np.argmax(scores, axis=0)
        delta[t] = scores[psi[t], states] + em[t]

    path = np.empty(T, dtype=np.int64)
    path[-1] = int(np.argmax(delta[-1]))
    for t in range(T - 2, -1, -1):
        path[t] = psi[t + 1, path[t + 1]]

    best = float(delta[-1, path[-1]])
    per_step = delta[np.arange(T), path]
    logger.debug("Viterbi T=%d, S=%d, log_prob=%.4f", T, S, best)
    return ViterbiResult(path.tolist(), best, per_step.tolist())


def forward(
    observations: Sequence[int],
    model: HMMModel,
    cancel: Optional[threading.Event] = None,
) -> ForwardResult:
    """Forward lattice and total sequence log-likelihood."""
    em = emission_log_lattice(observations, model)
    T, S = em.shape
    if T == 0:
        return ForwardResult(np.zeros((0, S)), -math.inf)

    alpha = np.empty((T, S))
    alpha[0] = model.log_initial + em[0]
    for t in range(1, T):
        _check_cancel(cancel, t, T, "Forward")
        alpha[t] = np.logaddexp.reduce(alpha[t - 1][:, None] + model.log_transition, axis=0) + em[t]

    total = float(np.logaddexp.reduce(alpha[-1]))
    logger.debug("Forward T=%d, S=%d, log_likelihood=%.4f", T, S, total)
    return ForwardResult(alpha, total)


def backward(
    observations: Sequence[int],
    model: HMMModel,
    cancel: Optional[threading.Event] = None,
) -> BackwardResult:
    """Backward lattice; total = logadd_s(log pi_s + log B[s][o_0] + beta[0][s])."""
    em = emission_log_lattice(observations, model)
    T, S = em.shape
    if T == 0:
        return BackwardResult(np.zeros((0, S)), -math.inf)

    beta = np.empty((T, S))
    beta[-1] = 0.0
    for t in range(T - 2, -1, -1):
        _check_cancel(cancel, T - 1 - t, T, "Backward")
        beta[t] = np.logaddexp.reduce(
            model.log_transition + em[t + 1][None, :] + beta[t + 1][None, :],
            axis=1,
        )

    total = float(np.logaddexp.reduce(model.log_initial + em[0] + beta[0]))
    return BackwardResult(beta, total)


def likelihood(
    observations: Sequence[int],
    model: HMMModel,
    cancel: Optional[threading.Event] = None,
) -> float:
    """Total sequence log-likelihood (Forward)."""
    return forward(observations, model, cancel=cancel).total_log_likelihood


class HMMDecoder:
    """Decoder bound to one HMMModel.

    Holds only a reference to the immutable model; every call allocates
    its own lattices, so concurrent calls on one decoder are safe.
    """

    def __init__(self, model: HMMModel):
        self.model = model

    def decode(self, observations: Sequence[int], cancel: Optional[threading.Event] = None) -> ViterbiResult:
        return viterbi(observations, self.model, cancel=cancel)

    def forward(self, observations: Sequence[int], cancel: Optional[threading.Event] = None) -> ForwardResult:
        return forward(observations, self.model, cancel=cancel)

    def backward(self, observations: Sequence[int], cancel: Optional[threading.Event] = None) -> BackwardResult:
        return backward(observations, self.model, cancel=cancel)

    def likelihood(self, observations: Sequence[int], cancel: Optional[threading.Event] = None) -> float:
        return likelihood(observations, self.model, cancel=cancel)

    def posteriors(self, observations: Sequence[int]) -> np.ndarray:
        """log P(q_t = s | O) as (T, num_states); all -inf if O is unscoreable."""
        fwd = self.forward(observations)
        bwd = self.backward(observations)
        if fwd.total_log_likelihood == -math.inf:
            return np.full_like(fwd.alpha, -np.inf)
        return fwd.alpha + bwd.beta - fwd.total_log_likelihood
