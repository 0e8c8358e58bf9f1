"""Core plumbing: async helpers and the git transport."""
