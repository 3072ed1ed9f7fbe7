# Middleware package init
"""
Spike Server — Middleware Package
==================================

What:  Cross-cutting stages applied to every request, each a plain ASGI class.

Middleware Chain (order fixed in pipeline.py):
    Request → [Request ID] → [Recovery] → [Timeout] → [CORS] → [Access Log] → Router

    Supporting modules:
    - context.py: typed RequestContext, Deadline, timeout helpers
    - guard.py:   StatusRecorder and first-write-wins ResponseGuard
"""
