"""HTTP adapter exposing the event cache."""
