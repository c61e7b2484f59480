"""Client-side load balancing (CLB).

Runnable demo of name-based request routing:
 - two interchangeable greeting instances registering under one logical name
 - a small lease-based service registry
 - a routing client that resolves the name and forwards to one instance

Each piece is kept small so the request path can be followed end to end.
"""
