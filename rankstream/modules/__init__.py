"""
Domain modules.

- ``shared``: base service, base repository and domain exceptions
- ``identity``: participant tokens and registration lookups
- ``scores``: the score mutator and its HTTP routes
- ``ranking``: rank queries, the Rank Cache and leaderboard routes
- ``broadcast``: live observer connections and cross-process fan-out
"""
