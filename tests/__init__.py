"""
Rankstream Test Suite
=====================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with mocks and fakes (no external dependencies)
- tests/integration/   : Integration tests with testcontainers (real PostgreSQL / Redis)

Testing Philosophy
------------------
- Unit tests: fast, isolated, exercise domain rules and wiring
- Integration tests: concurrency, ordering and cache/broadcast behaviour
  against real infrastructure
- Markers (unit, integration, database, redis) select subsets
- Follow AAA pattern: Arrange, Act, Assert
"""
