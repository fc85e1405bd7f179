"""
Shared, cross-cutting code for the API.

`core/` holds the small building blocks every feature uses: DB pool and
tenant scopes, settings, typed errors, numeric conversions. Feature-specific
SQL and business logic live in their feature package (e.g. `bulletins/`).
"""
