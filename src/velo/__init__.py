"""
Velo - Team Rating and Odds Pipeline

Maintains Elo-style skill ratings for competitive esports teams from a
stream of match results, and derives win probabilities and decimal odds
for matches that have not started yet.

Main components:
- source: Data source adapter (vlr.gg) returning normalized raw records
- services: Reconciliation and the scheduled ingestion/recompute jobs
- elo: Pure rating engine, tier classifier and odds calculator
- db: SQLAlchemy models and session management
- tasks: Job registry and interval scheduler
"""

__version__ = "1.0.0"
