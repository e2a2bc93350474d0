"""Core Layer — pure domain logic, no network, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Stream decoding and reordering are deterministic for a given input
    - Logging is the only side effect allowed here

Design Decisions:
    - Functional core separated from imperative shell: the decoder and the
      ordering engine are testable with plain bytes and plain dataclasses
"""
