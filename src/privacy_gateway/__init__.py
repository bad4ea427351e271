"""Privacy gateway: OSCAL/RoPA documents proposed as GitHub pull requests."""
