"""Key lifecycle: token generation, policy, stores, service and HTTP routes."""
