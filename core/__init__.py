"""core/ -- Kernel: configuration, roles, errors, sanitization, side effects.

Layer rule: core/ imports nothing from the other packages.
"""
