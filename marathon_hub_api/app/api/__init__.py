"""
API package containing the HTTP routes.

Each module in ``endpoints`` defines an ``APIRouter`` for one domain
(auth, marathons, registrations).  ``router.py`` aggregates them and
the application includes the result at the root path, which is where
the web front end expects them.
"""
