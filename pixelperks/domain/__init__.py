"""Domain layer (pure logic).

- Keep session, pricing and settlement rules and calculations here.
- Avoid I/O: no DB sessions, no HTTP/FastAPI, no Redis.
- Prefer deterministic functions (`now` is passed in as an argument).
- Functions return updated copies; callers persist them.
"""
