"""Box score, efficiency and model-based analytics computed from PlayEvents."""
