"""
Service layer abstraction.

Each service encapsulates business logic for a domain and receives the
``DocumentStore`` it works on as an argument, so API handlers stay thin
and the logic can be exercised directly in tests.
"""
