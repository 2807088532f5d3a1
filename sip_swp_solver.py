import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from sip_swp_simulation import (
    InvalidParametersError,
    SimulationParameters,
    SimulationResult,
    get_logger,
    run_simulation,
)


class CalculationMode(str, Enum):
    SIP = "calculateSIP"
    INCOME = "calculateIncome"
    END_CORPUS = "calculateEndCorpus"


class SolverError(ValueError):
    """Raised for a calculation mode the solver does not know."""


@dataclass(frozen=True)
class SearchBounds:
    low: float
    high: float
    min_width: float


SIP_BOUNDS = SearchBounds(low=1000, high=5_000_000, min_width=100)
INCOME_BOUNDS = SearchBounds(low=10_000, high=5_000_000, min_width=1000)

ACCEPT_TOLERANCE = 100_000
MAX_ITERATIONS = 50
# a zero/NaN evaluation does not count as an iteration; this caps how many we tolerate
MAX_INCONCLUSIVE_EVALUATIONS = 5

# settings keys passed to solve() alongside the parameters
SOLVER_AMOUNT_KEYS = ("starting_sip_amount", "starting_monthly_income", "target_end_corpus")


@dataclass(frozen=True)
class SolverResult:
    mode: CalculationMode
    sip_amount: float
    monthly_income: float
    iterations: int
    converged: bool
    inconclusive_evaluations: int
    monotonic: bool
    result: SimulationResult

    @property
    def solved_value(self) -> Optional[float]:
        if self.mode is CalculationMode.SIP:
            return self.sip_amount
        if self.mode is CalculationMode.INCOME:
            return self.monthly_income
        return None


@dataclass(frozen=True)
class BisectionOutcome:
    value: float
    iterations: int
    converged: bool
    inconclusive_evaluations: int
    monotonic: bool


def parse_mode(mode) -> CalculationMode:
    try:
        return CalculationMode(mode)
    except ValueError as ex:
        raise SolverError(f"Unknown calculation mode: {mode!r}") from ex


def _is_inconclusive(final_corpus: float) -> bool:
    return not final_corpus or math.isnan(final_corpus)


def bisect_for_target(
    evaluate: Callable[[float], float],
    bounds: SearchBounds,
    target: float,
    increasing: bool,
    label: str = "value",
    debug: bool = False,
) -> BisectionOutcome:
    """
    Bounded bisection on an integer unknown.

    `evaluate` maps the unknown to a final corpus. `increasing` states the
    assumed direction of that mapping: True means a larger unknown gives a
    larger corpus, so overshooting the target moves `hi` down; False inverts
    the tie-break. The search stops once the corpus is within
    ACCEPT_TOLERANCE of the target, the interval is narrower than
    bounds.min_width, or MAX_ITERATIONS conclusive steps have been taken.
    The last midpoint evaluated is returned as the best estimate.
    """
    logger = get_logger(debug)
    lo = bounds.low
    hi = bounds.high

    monotonic = _check_monotonic(evaluate, lo, hi, increasing)
    if not monotonic:
        logger.warning(
            f"Solving for {label}: final corpus is not {'increasing' if increasing else 'decreasing'} "
            f"across [{lo:,.0f}, {hi:,.0f}]; the result may not be the true root."
        )

    best = 0.0
    iterations = 0
    inconclusive = 0
    converged = False

    while iterations < MAX_ITERATIONS and hi - lo > bounds.min_width:
        mid = math.floor((lo + hi) / 2)
        final_corpus = evaluate(mid)

        if _is_inconclusive(final_corpus):
            inconclusive += 1
            logger.debug(f"Solving for {label}: inconclusive evaluation at {mid:,.0f}")
            if inconclusive >= MAX_INCONCLUSIVE_EVALUATIONS:
                logger.warning(
                    f"Solving for {label}: {inconclusive} inconclusive evaluations at {mid:,.0f}; "
                    f"stopping with best estimate {best:,.0f}."
                )
                break
            continue

        if abs(final_corpus - target) < ACCEPT_TOLERANCE:
            best = mid
            converged = True
            break

        overshoot = final_corpus > target
        if overshoot == increasing:
            hi = mid
        else:
            lo = mid
        best = mid
        iterations += 1
        logger.debug(f"Solving for {label}: iter {iterations} mid={mid:,.0f} corpus={final_corpus:,.2f}")

    if not converged and hi - lo <= bounds.min_width:
        converged = True

    return BisectionOutcome(
        value=float(best),
        iterations=iterations,
        converged=converged,
        inconclusive_evaluations=inconclusive,
        monotonic=monotonic,
    )


def _check_monotonic(evaluate: Callable[[float], float], lo: float, hi: float, increasing: bool) -> bool:
    at_lo = evaluate(lo)
    at_hi = evaluate(hi)
    if math.isnan(at_lo) or math.isnan(at_hi):
        return False
    return at_hi >= at_lo if increasing else at_hi <= at_lo


def solve(
    params: SimulationParameters,
    mode,
    starting_sip_amount: float = 0.0,
    starting_monthly_income: float = 0.0,
    target_end_corpus: float = 0.0,
    debug: bool = False,
) -> SolverResult:
    """
    Run the selected calculation and return the discovered value together
    with the full year-by-year projection for it.

    - calculateSIP: find the monthly SIP that lands on target_end_corpus,
      with the income fixed at starting_monthly_income.
    - calculateIncome: find the monthly income that lands on target_end_corpus,
      with the SIP fixed at starting_sip_amount.
    - calculateEndCorpus: project once with the given SIP and income.
    """
    mode = parse_mode(mode)
    logger = get_logger(debug)

    sip_amount = float(starting_sip_amount)
    monthly_income = float(starting_monthly_income)
    outcome: Optional[BisectionOutcome] = None

    if mode is CalculationMode.SIP:
        outcome = bisect_for_target(
            lambda sip: run_simulation(
                params, sip, monthly_income, final_corpus_only=True, debug=debug
            ).final_corpus,
            SIP_BOUNDS,
            target_end_corpus,
            increasing=True,
            label="SIP",
            debug=debug,
        )
        sip_amount = outcome.value
    elif mode is CalculationMode.INCOME:
        outcome = bisect_for_target(
            lambda income: run_simulation(
                params, sip_amount, income, final_corpus_only=True, debug=debug
            ).final_corpus,
            INCOME_BOUNDS,
            target_end_corpus,
            increasing=False,
            label="income",
            debug=debug,
        )
        monthly_income = outcome.value

    result = run_simulation(params, sip_amount, monthly_income, debug=debug)

    if outcome is not None:
        logger.info(
            f"[{mode.value}] SIP={sip_amount:,.0f}, income={monthly_income:,.0f}, "
            f"iterations={outcome.iterations}, converged={outcome.converged}, "
            f"final_corpus={result.summary.final_corpus:,.0f}"
        )

    return SolverResult(
        mode=mode,
        sip_amount=sip_amount,
        monthly_income=monthly_income,
        iterations=outcome.iterations if outcome else 0,
        converged=outcome.converged if outcome else True,
        inconclusive_evaluations=outcome.inconclusive_evaluations if outcome else 0,
        monotonic=outcome.monotonic if outcome else True,
        result=result,
    )


def solve_from_settings(settings: dict, debug: Optional[bool] = None) -> Tuple[SimulationParameters, SolverResult]:
    """Convenience wrapper for callers holding a settings dict (the page, the smoke script)."""
    params = SimulationParameters.from_settings(settings)
    if debug is None:
        debug = bool(settings.get("enable_debug_logging", False))
    try:
        amounts = {key: float(settings.get(key, 0.0)) for key in SOLVER_AMOUNT_KEYS}
    except (TypeError, ValueError, OverflowError) as ex:
        raise InvalidParametersError(f"Invalid setting value: {ex}") from ex
    res = solve(
        params,
        settings.get("calculation_mode", CalculationMode.SIP.value),
        debug=debug,
        **amounts,
    )
    return params, res
