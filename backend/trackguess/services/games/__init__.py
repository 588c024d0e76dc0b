"""Game domain services: matching, scoring, timers and the room state machine.

Everything here is imported by the HTTP routes and the socket handlers,
keeping transport concerns separated from core game mechanics. Both
transports go through ``GameOrchestrator`` so a room behaves the same no
matter which channel a request arrived on.
"""
