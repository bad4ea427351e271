"""Privacy gateway - stateless proxy between compliance editors and a GitHub data repository."""
