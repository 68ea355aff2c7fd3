"""Atelier — back office for an arts center.

Client records, group classes, schedules, subscriptions, invoices and
payments live elsewhere; this package carries the real-time side: the
data-change and messaging notification streams the admin UI listens to.
"""

__version__ = "0.1.0"
