"""
Shared, cross-cutting code for the API.

`core/` holds small building blocks that several features use (DB wiring,
settings, logging, error envelopes, token encryption, rate limiting, the
OpenAI client and the notifications hub). Feature-specific SQL and business
logic stay in the corresponding feature package (e.g. `workflows/`).
"""
