"""Service layer for business logic.

Layer hierarchy:
    Routes / CLI -> Services (Business Logic) -> Repositories (Database)
                          \\-> rendering, object store, mailer

Services should:
- Contain the business rules (template lookup, generation, upserts)
- Orchestrate calls to repositories and external collaborators
- Raise domain exceptions that routes translate to status codes
- Return Pydantic schema objects, never ORM rows

Services should NOT:
- Directly execute SQL queries (use repositories)
- Commit (the request or CLI session owns the transaction)
- Know about HTTP request/response details
"""
