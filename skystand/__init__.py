"""
Skystand — Airline stand & gate registry
=========================================

A REST backend for the Skystand Discord bot and its admin dashboard.
It stores airports, airlines and the parking stands each airline uses at
each airport, collects feedback submitted from Discord, keeps the bot's
command usage logs, and records every admin mutation in an activity log.

Package layout::

    skystand/
    ├── config.py        YAML configuration loader
    ├── constants.py     Closed enumerations and shared limits
    ├── errors.py        Application exception taxonomy
    ├── database/        SQLAlchemy models & engine helpers
    ├── services/        Query engines, mutations, audit trail, CDN adapter
    └── api/             FastAPI application, dependencies & routers
"""

__version__ = "0.1.0"
