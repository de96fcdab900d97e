"""
Fuel Points feature modules.

- shared: exceptions, base service, formulas, windows
- ledger: authoritative completion store (memory and SQL backends)
- client_state: optimistic local mirror
- completion: attempt workflow and engine facade
- lifecycle: start, create and cancel challenge and quest instances
"""
