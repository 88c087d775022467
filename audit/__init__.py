"""audit/ -- Append-only audit trail of privileged mutations.

Layer rule: audit/ imports only stdlib, third-party libraries, and core/.
"""
