"""Schedule, adherence, calendar and explanation services."""
