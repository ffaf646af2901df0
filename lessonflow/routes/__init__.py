"""HTTP routes for the lesson engine."""
