"""content/ -- Document collections edited from the admin panel.

Layer rule: content/ imports only stdlib, third-party libraries, and core/.
"""
