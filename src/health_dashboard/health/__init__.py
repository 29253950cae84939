"""Account health scoring -- metrics, signals, priority ranking, portfolio roll-ups.

The pure modules (metrics, signals, priority, portfolio) take records and a
reference date and return derived entities. HealthDashboardService in
``service`` wires them to the account repository.
"""
