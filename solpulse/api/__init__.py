"""HTTP surface for the narrative pipeline."""
