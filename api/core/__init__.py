"""
Shared, cross-cutting code for the API.

`core/` holds the small building blocks every feature uses (DB wiring,
configuration, logging, error handling, rate limiting, outbound email).
Feature-specific SQL and business rules stay in the feature packages
(`auth/`, `users/`, `calculators/`, `comments/`, `community/`).
"""
