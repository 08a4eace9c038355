"""Service layer for business logic.

Services encapsulate all business logic, keeping routes thin and focused
on HTTP handling. This separation provides:
- Clear business rules in one place
- Orchestration of multiple repositories
- Reusable business logic across HTTP routes and the background worker

Layer hierarchy:
    Routes (HTTP) -> Services (Business Logic) -> Repositories (Database)

Services should:
- Contain all business rules and validation
- Orchestrate calls to repositories
- Raise core.errors.AppError with a stable code on failure
- Not contain HTTP-specific logic (status codes live on the error itself)

Services should NOT:
- Directly execute SQL queries (use repositories)
- Know about HTTP request/response details
- Return ORM models (convert to schemas first)
"""
