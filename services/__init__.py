"""
Service layer

Computation that does not drive state transitions:
- StandingsService: points and medal tallies, podiums
- TeamService: roster entry tagging and team validation
- HeatDraft: in-memory heat result commands
- NamingService: round names and code normalization
"""
