import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Dict, List, Mapping, Optional, Union


LOGGER_NAME = "SipSwpSimulator"

AGE_FIELDS = (
    "current_age",
    "retirement_age",
    "end_age",
    "sip_payment_end_age",
    "sip_freeze_age",
)
AMOUNT_FIELDS = (
    "yearly_income_increase",
    "added_corpus_now",
    "added_corpus_retirement",
    "sip_increase_rate",
    "expected_return",
)


class InvalidParametersError(ValueError):
    """Raised when a SimulationParameters record cannot be built."""


class SimulationError(RuntimeError):
    """Generic computation failure inside a simulation run."""


def get_logger(debug: bool = False) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(levelname)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    return logger


def round_money(x: float) -> int:
    """Round half up to a whole currency unit (same as JS Math.round)."""
    return int(math.floor(x + 0.5))


@dataclass(frozen=True)
class SimulationParameters:
    current_age: int
    retirement_age: int
    end_age: int
    sip_payment_end_age: int
    yearly_income_increase: float
    added_corpus_now: float
    added_corpus_retirement: float
    sip_increase_rate: float
    sip_freeze_age: int
    expected_return: float

    def __post_init__(self) -> None:
        for name in AGE_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidParametersError(f"{name} must be a whole number of years, got {value!r}")
            if value < 0:
                raise InvalidParametersError(f"{name} must not be negative, got {value}")

        for name in AMOUNT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, Real):
                raise InvalidParametersError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise InvalidParametersError(f"{name} must be finite, got {value!r}")

    @classmethod
    def from_settings(cls, settings: Mapping) -> "SimulationParameters":
        """
        Build parameters from a settings dict (the keys used in DEFAULTS).
        Ages are truncated to whole years; everything else is read as float.
        """
        try:
            kwargs = {name: int(float(settings[name])) for name in AGE_FIELDS}
            kwargs.update({name: float(settings[name]) for name in AMOUNT_FIELDS})
        except KeyError as ex:
            raise InvalidParametersError(f"Missing setting: {ex.args[0]}") from ex
        except (TypeError, ValueError, OverflowError) as ex:
            raise InvalidParametersError(f"Invalid setting value: {ex}") from ex
        return cls(**kwargs)

    @property
    def monthly_return(self) -> float:
        return self.expected_return / 100.0 / 12.0


@dataclass(frozen=True)
class YearRecord:
    age: int
    year_start_corpus: int
    sip_amount: int
    total_sip_for_year: int
    monthly_income: int
    total_withdrawal_for_year: int
    year_end_corpus: int
    net_cash_flow: int
    is_retired: bool
    is_sip_active: bool
    is_sip_frozen: bool


@dataclass(frozen=True)
class SimulationSummary:
    total_sip_invested: int
    total_withdrawn: int
    final_corpus: float


@dataclass(frozen=True)
class SimulationResult:
    yearly_data: List[YearRecord]
    summary: SimulationSummary


@dataclass(frozen=True)
class FinalCorpus:
    final_corpus: float


class SipSwpSimulator:
    """
    Year-by-year SIP accumulation followed by SWP decumulation.

    Each month applies, in order: SIP contribution, income withdrawal, then
    one month of growth on the net balance. The corpus and SIP level are kept
    at full precision; only the emitted YearRecords are rounded.
    """

    def __init__(
        self,
        params: SimulationParameters,
        sip_amount: float,
        monthly_income: float,
        debug: bool = False,
    ):
        self.p = params
        self.sip_amount = float(sip_amount)
        self.monthly_income = float(monthly_income)
        self.logger = get_logger(debug)

        # running state
        self.corpus = float(params.added_corpus_now)
        self.current_sip = self.sip_amount
        self.records: List[YearRecord] = []
        self.depleted_at_age: Optional[int] = None

    # -------------------------
    # Per-year helpers
    # -------------------------
    def _income_for_age(self, age: int) -> float:
        # recomputed from the base each year, never compounded incrementally
        growth = 1.0 + self.p.yearly_income_increase / 100.0
        return self.monthly_income * (growth ** (age - self.p.retirement_age))

    def _step_year(self, age: int, build_record: bool) -> bool:
        """Simulate one year. Returns False when the fund is depleted in retirement."""
        p = self.p
        is_retired = age >= p.retirement_age
        is_sip_active = age <= p.sip_payment_end_age

        if age == p.retirement_age:
            self.corpus += p.added_corpus_retirement
        year_start_corpus = self.corpus

        current_income = self._income_for_age(age) if is_retired else 0.0
        growth = 1.0 + p.monthly_return

        total_sip_for_year = 0.0
        total_withdrawal_for_year = 0.0
        for _month in range(12):
            if is_sip_active:
                self.corpus += self.current_sip
                total_sip_for_year += self.current_sip
            if is_retired:
                self.corpus -= current_income
                total_withdrawal_for_year += current_income
            self.corpus *= growth

        sip_in_effect = self.current_sip
        if age < p.sip_freeze_age and is_sip_active:
            self.current_sip *= 1.0 + p.sip_increase_rate / 100.0

        if build_record:
            self.records.append(
                YearRecord(
                    age=age,
                    year_start_corpus=round_money(year_start_corpus),
                    sip_amount=round_money(sip_in_effect) if is_sip_active else 0,
                    total_sip_for_year=round_money(total_sip_for_year),
                    monthly_income=round_money(current_income) if is_retired else 0,
                    total_withdrawal_for_year=round_money(total_withdrawal_for_year),
                    year_end_corpus=round_money(self.corpus),
                    net_cash_flow=round_money((total_sip_for_year - total_withdrawal_for_year) / 12.0),
                    is_retired=is_retired,
                    is_sip_active=is_sip_active,
                    is_sip_frozen=age >= p.sip_freeze_age and is_sip_active,
                )
            )
            self.logger.debug(
                f"Age {age}: start={year_start_corpus:,.2f} sip={total_sip_for_year:,.2f} "
                f"withdrawn={total_withdrawal_for_year:,.2f} end={self.corpus:,.2f}"
            )

        if self.corpus <= 0 and is_retired:
            self.depleted_at_age = age
            return False
        return True

    def _simulate_years(self, build_record: bool) -> None:
        for age in range(self.p.current_age, self.p.end_age + 1):
            if not self._step_year(age, build_record):
                break

    # -------------------------
    # Main run
    # -------------------------
    def final_corpus(self) -> FinalCorpus:
        self._simulate_years(build_record=False)
        return FinalCorpus(final_corpus=self.corpus)

    def run(self) -> SimulationResult:
        self._simulate_years(build_record=True)

        if self.depleted_at_age is not None:
            self.logger.info(f"Corpus depleted at age {self.depleted_at_age}; stopping projection.")

        summary = SimulationSummary(
            total_sip_invested=sum(r.total_sip_for_year for r in self.records),
            total_withdrawn=sum(r.total_withdrawal_for_year for r in self.records),
            final_corpus=self.records[-1].year_end_corpus if self.records else self.p.added_corpus_now,
        )
        self.logger.debug(
            f"Simulated {len(self.records)} years | SIP {self.sip_amount:,.2f} | "
            f"Income {self.monthly_income:,.2f} | Final corpus {summary.final_corpus:,.2f}"
        )
        return SimulationResult(yearly_data=list(self.records), summary=summary)


def run_simulation(
    params: SimulationParameters,
    sip_amount: float,
    monthly_income: float,
    final_corpus_only: bool = False,
    debug: bool = False,
) -> Union[SimulationResult, FinalCorpus]:
    """
    Entry point used by the solver and the page.

    final_corpus_only=True skips record building and returns only the
    unrounded final corpus, for cheap repeated evaluation.
    """
    try:
        sim = SipSwpSimulator(params, sip_amount, monthly_income, debug=debug)
        if final_corpus_only:
            return sim.final_corpus()
        return sim.run()
    except Exception as ex:
        logging.getLogger(LOGGER_NAME).exception("Error in run_simulation")
        raise SimulationError("Error in run_simulation") from ex


def result_as_dict(result: Union[SimulationResult, FinalCorpus]) -> Dict:
    """Plain-dict view of a result, keyed the way the page and report consume it."""
    if isinstance(result, FinalCorpus):
        return {"final_corpus": result.final_corpus}
    return {
        "yearly_data": [vars(r).copy() for r in result.yearly_data],
        "summary": vars(result.summary).copy(),
    }
