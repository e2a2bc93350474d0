"""Services Layer — imperative shell around the decoder and the ordering engine.

Invariants:
    - Services own IO (transport, persistence); core/ stays pure
    - One coordinator owns the board snapshot; no other module mutates it

Design Decisions:
    - Chat streaming and board ordering live in separate modules: they share
      no state and run independently
"""
