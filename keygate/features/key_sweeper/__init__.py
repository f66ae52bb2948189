"""Periodic removal of expired keys.

Started from the application lifespan when KEYGATE_SWEEP_INTERVAL > 0.
"""
