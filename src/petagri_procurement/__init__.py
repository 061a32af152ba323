"""
Petagri Procurement - event-sourced tender workflow core

Field visit reports become tender assignments, partners (mitra/toko) submit
competing offerings, an approver picks exactly one winner, and only then may
a delivery note be issued. Every state change is an event in an append-only
SQLite log shared by all client sessions.
"""

from petagri_procurement.procurement import Procurement

__version__ = "0.1.0"
__all__ = ["Procurement", "__version__"]
