import logging
from sip_swp_solver import solve_from_settings
from sip_swp_helpers import default_settings

# Root handler at INFO; the "SipSwpSimulator" logger attaches its own
logging.basicConfig(level=logging.INFO)

# SIP search on the default inputs, cut short at 55, with per-iteration and per-year debug lines on
settings = default_settings()
settings["enable_debug_logging"] = True
settings["end_age"] = 55  # default retirement is 50, so six withdrawal years
settings["target_end_corpus"] = 50_000_000

print("Solving for SIP with logging enabled...")
params, res = solve_from_settings(settings)
print(f"\nSolve complete. SIP={res.sip_amount:,.0f} after {res.iterations} iterations, "
      f"{len(res.result.yearly_data)} years projected.")
