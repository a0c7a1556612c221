"""MindChat auth backend.

Server-side session handling for the MindChat web app:

- Registration / login / logout against a Supabase-style identity backend
- HttpOnly session cookies (`sb-access-token`, `sb-refresh-token`)
- Per-endpoint rate limits and input validation
- Role-gated access to subscription features (free / premium / license)
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
