"""
Domain Layer - Pure Business Logic

This layer contains:
- Domain events (immutable facts about what happened)
- Aggregates (fold functions that rebuild state from events)
- Value objects (Money, GeoLocation)
- The error taxonomy shared by every layer

Key principle: ZERO dependencies on infrastructure.
Folds are pure functions, so they can be tested without a database.
"""
