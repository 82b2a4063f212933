"""
FarmWatch server package.

FastAPI service over a SQLAlchemy store that:
- serves CRUD routes for fire zones, security points, team members, map configs,
  live feed settings, notifications and users
- captures committed changes to the watched collections into an in-process change feed
- keeps a live state synchronizer and streams snapshots over WebSockets
"""
