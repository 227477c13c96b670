# src/inference/logmath.py — v1
"""Log-domain arithmetic that tolerates probabilities of exactly 0 and 1."""

from __future__ import annotations

import logging
import math

logger = logging.getLogger(__name__)

LOG_PROB_MIN = math.log(1e-4)
LOG_PROB_MAX = math.log(1.0 - 1e-4)
LOG_HALF = math.log(0.5)


def safe_log(p: float) -> float:
    """ln(p), with ln(0) = -inf."""
    if p <= 0.0:
        return -math.inf
    return math.log(p)


def log1mexp(log_p: float) -> float:
    """ln(1 - exp(log_p)) for log_p <= 0, with ln(0) = -inf."""
    if log_p >= 0.0:
        return -math.inf
    if log_p == -math.inf:
        return 0.0
    # Split at ln(1/2).
    if log_p > -0.6931471805599453:
        return math.log(-math.expm1(log_p))
    return math.log1p(-math.exp(log_p))


def log_add(a: float, b: float) -> float:
    """ln(exp(a) + exp(b))."""
    if a == -math.inf:
        return b
    if b == -math.inf:
        return a
    if a < b:
        a, b = b, a
    return a + math.log1p(math.exp(b - a))


def sigmoid(x: float) -> float:
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


def log_sigmoid(x: float) -> float:
    """ln(sigmoid(x)), exact at +-inf."""
    if x == math.inf:
        return 0.0
    if x == -math.inf:
        return -math.inf
    if x >= 0:
        return -math.log1p(math.exp(-x))
    return x - math.log1p(math.exp(x))


def logit(p: float) -> float:
    """ln(p / (1 - p)), with logit(1) = +inf and logit(0) = -inf."""
    if p >= 1.0:
        return math.inf
    if p <= 0.0:
        return -math.inf
    return math.log(p / (1.0 - p))


def clip_log_prob(log_p: float) -> float:
    """Clip a log-probability into [ln(1e-4), ln(1 - 1e-4)]."""
    if log_p < LOG_PROB_MIN:
        logger.debug("Clipping log-probability %s up to %s", log_p, LOG_PROB_MIN)
        return LOG_PROB_MIN
    if log_p > LOG_PROB_MAX:
        logger.debug("Clipping log-probability %s down to %s", log_p, LOG_PROB_MAX)
        return LOG_PROB_MAX
    return log_p
