import logging
import unittest

from sip_swp_simulation import InvalidParametersError, SimulationParameters, get_logger, run_simulation
from sip_swp_solver import (
    INCOME_BOUNDS,
    MAX_INCONCLUSIVE_EVALUATIONS,
    MAX_ITERATIONS,
    SIP_BOUNDS,
    CalculationMode,
    SearchBounds,
    SolverError,
    bisect_for_target,
    solve,
    solve_from_settings,
)

PARAMS = SimulationParameters(
    current_age=30,
    retirement_age=60,
    end_age=85,
    sip_payment_end_age=60,
    yearly_income_increase=5,
    added_corpus_now=1_000_000,
    added_corpus_retirement=5_000_000,
    sip_increase_rate=5,
    sip_freeze_age=50,
    expected_return=10,
)

SETTINGS = {
    "current_age": 30, "retirement_age": 60, "end_age": 85, "sip_payment_end_age": 60,
    "yearly_income_increase": 5, "added_corpus_now": 1_000_000, "added_corpus_retirement": 5_000_000,
    "sip_increase_rate": 5, "sip_freeze_age": 50, "expected_return": 10,
    "calculation_mode": "calculateEndCorpus",
    "starting_sip_amount": 50_000, "starting_monthly_income": 100_000, "target_end_corpus": 0,
}


class CountingEvaluator:
    def __init__(self, fn):
        self.fn = fn
        self.calls = []

    def __call__(self, x):
        self.calls.append(x)
        return self.fn(x)


class TestBisection(unittest.TestCase):
    def test_increasing_finds_root(self):
        """corpus = 1000 * x, target 100 Cr -> x = 10,00,000."""
        out = bisect_for_target(lambda x: 1000.0 * x, SIP_BOUNDS, 1_000_000_000, increasing=True)
        self.assertTrue(out.converged)
        self.assertTrue(out.monotonic)
        self.assertAlmostEqual(out.value, 1_000_000, delta=SIP_BOUNDS.min_width + 1)
        self.assertLessEqual(out.iterations, MAX_ITERATIONS)

    def test_decreasing_finds_root(self):
        """Inverted tie-break: corpus = 500 Cr - 1000 * x, target 100 Cr -> x = 40,00,000."""
        out = bisect_for_target(lambda x: 5_000_000_000 - 1000.0 * x, INCOME_BOUNDS, 1_000_000_000, increasing=False)
        self.assertTrue(out.converged)
        self.assertAlmostEqual(out.value, 4_000_000, delta=INCOME_BOUNDS.min_width + 1)

    def test_accepts_within_tolerance_immediately(self):
        target = 10_000_000
        ev = CountingEvaluator(lambda x: target + 50_000)
        out = bisect_for_target(ev, SIP_BOUNDS, target, increasing=True)

        self.assertTrue(out.converged)
        self.assertEqual(out.iterations, 0)
        self.assertEqual(out.value, (1000 + 5_000_000) // 2)
        # two bound checks + the first midpoint
        self.assertEqual(len(ev.calls), 3)

    def test_overshoot_moves_upper_bound_down_for_sip(self):
        out = bisect_for_target(lambda x: 1e12 + x, SIP_BOUNDS, 0, increasing=True)
        self.assertLess(out.value, SIP_BOUNDS.low + SIP_BOUNDS.min_width * 2)

    def test_overshoot_moves_lower_bound_up_for_income(self):
        out = bisect_for_target(lambda x: 1e12 - x, INCOME_BOUNDS, 0, increasing=False)
        self.assertGreater(out.value, INCOME_BOUNDS.high - INCOME_BOUNDS.min_width * 2)

    def test_iteration_cap(self):
        """A range too wide to narrow in 50 halvings and a target that is never reached."""
        bounds = SearchBounds(low=0, high=2 ** 60, min_width=0)
        out = bisect_for_target(lambda x: float(x), bounds, float(2 ** 62), increasing=True)
        self.assertEqual(out.iterations, MAX_ITERATIONS)
        self.assertFalse(out.converged)
        self.assertGreater(out.value, 0)

    def test_inconclusive_evaluations_are_bounded(self):
        ev = CountingEvaluator(lambda x: 0.0)
        with self.assertLogs("SipSwpSimulator", level="WARNING"):
            out = bisect_for_target(ev, SIP_BOUNDS, 1_000_000, increasing=True)

        self.assertEqual(out.inconclusive_evaluations, MAX_INCONCLUSIVE_EVALUATIONS)
        self.assertEqual(out.iterations, 0)
        self.assertEqual(out.value, 0.0)
        self.assertFalse(out.converged)
        self.assertEqual(len(ev.calls), 2 + MAX_INCONCLUSIVE_EVALUATIONS)

    def test_nan_is_inconclusive(self):
        with self.assertLogs("SipSwpSimulator", level="WARNING"):
            out = bisect_for_target(lambda x: float("nan"), SIP_BOUNDS, 1_000_000, increasing=True)
        self.assertEqual(out.inconclusive_evaluations, MAX_INCONCLUSIVE_EVALUATIONS)
        self.assertFalse(out.monotonic)

    def test_non_monotonic_is_reported(self):
        with self.assertLogs("SipSwpSimulator", level="WARNING") as logs:
            out = bisect_for_target(lambda x: -1000.0 * x, SIP_BOUNDS, 1_000_000, increasing=True, label="SIP")
        self.assertFalse(out.monotonic)
        self.assertTrue(any("not increasing" in line for line in logs.output))


class TestSolve(unittest.TestCase):
    def test_end_corpus_mode_runs_once(self):
        res = solve(PARAMS, CalculationMode.END_CORPUS, 50_000, 100_000)
        self.assertEqual(res.result, run_simulation(PARAMS, 50_000, 100_000))
        self.assertEqual(res.iterations, 0)
        self.assertTrue(res.converged)
        self.assertIsNone(res.solved_value)

    def test_solve_for_sip(self):
        """Target is what a 20,000 SIP produces with no income; the solver should land back near 20,000."""
        target = run_simulation(PARAMS, 20_000, 0).summary.final_corpus
        res = solve(PARAMS, "calculateSIP", starting_monthly_income=0, target_end_corpus=target)

        self.assertIs(res.mode, CalculationMode.SIP)
        self.assertTrue(res.monotonic)
        self.assertTrue(res.converged)
        self.assertAlmostEqual(res.sip_amount, 20_000, delta=SIP_BOUNDS.min_width + 1)
        self.assertEqual(res.solved_value, res.sip_amount)
        self.assertEqual(res.monthly_income, 0)
        self.assertEqual(len(res.result.yearly_data), 56)
        self.assertEqual(res.result.yearly_data[0].sip_amount, round(res.sip_amount))

    def test_solve_for_income(self):
        target = run_simulation(PARAMS, 50_000, 150_000).summary.final_corpus
        res = solve(PARAMS, "calculateIncome", starting_sip_amount=50_000, target_end_corpus=target)

        self.assertIs(res.mode, CalculationMode.INCOME)
        self.assertTrue(res.converged)
        self.assertAlmostEqual(res.monthly_income, 150_000, delta=INCOME_BOUNDS.min_width + 1)
        self.assertEqual(res.solved_value, res.monthly_income)
        self.assertEqual(res.sip_amount, 50_000)
        self.assertEqual(res.result.yearly_data[30].monthly_income, round(res.monthly_income))

    def test_solve_from_settings_rejects_huge_amount(self):
        settings = dict(SETTINGS, starting_sip_amount=10 ** 400)
        with self.assertRaises(InvalidParametersError):
            solve_from_settings(settings)

    def test_unknown_mode(self):
        with self.assertRaises(SolverError):
            solve(PARAMS, "calculateEverything")

    def test_solve_from_settings(self):
        params, res = solve_from_settings(SETTINGS)
        self.assertEqual(params, PARAMS)
        self.assertEqual(res.result, run_simulation(PARAMS, 50_000, 100_000))


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.messages = []

    def emit(self, record):
        self.messages.append(record.getMessage())


class TestDebugLogging(unittest.TestCase):
    def setUp(self):
        self.logger = get_logger()
        self.handler = ListHandler()
        self.logger.addHandler(self.handler)

    def tearDown(self):
        self.logger.removeHandler(self.handler)
        get_logger(False)

    def test_debug_solve_logs_every_iteration(self):
        res = solve(PARAMS, CalculationMode.SIP, starting_monthly_income=0, target_end_corpus=5e8, debug=True)
        iteration_lines = [m for m in self.handler.messages if m.startswith("Solving for SIP: iter")]
        self.assertEqual(len(iteration_lines), res.iterations)
        self.assertGreater(res.iterations, 1)

    def test_default_solve_stays_quiet(self):
        solve(PARAMS, CalculationMode.SIP, starting_monthly_income=0, target_end_corpus=5e8)
        self.assertFalse(any(m.startswith("Solving for") for m in self.handler.messages))


if __name__ == "__main__":
    unittest.main()
