"""
Global analysis settings for the Potential Analysis engine.

These settings define constants that must be consistent across the profile
builder, the energy balance, the cash-flow projector and the metrics solver.
"""

# Calendar
# All annualization uses a 365-day year. The typical-year layout uses a
# non-leap reference calendar so it always has exactly 8760 hours.
DAYS_PER_YEAR = 365
HOURS_PER_DAY = 24
MONTHS_PER_YEAR = 12
HOURS_PER_YEAR = DAYS_PER_YEAR * HOURS_PER_DAY  # 8760
REFERENCE_YEAR = 2025

# Minimum data span used in the annualization factor [days]
MIN_DATA_SPAN_DAYS = 1.0

# IRR root finder
#   - The bracketing scan looks for a sign change of NPV(rate) on
#     [IRR_LOWER_BOUND, IRR_UPPER_BOUND].
#   - brentq then refines the root to IRR_TOLERANCE (absolute, on the rate).
IRR_LOWER_BOUND = -0.99
IRR_UPPER_BOUND = 10.0
IRR_TOLERANCE = 1e-12
IRR_MAX_ITERATIONS = 200
IRR_INITIAL_GUESS = 0.10
