"""Polish crypto capital-gains (PIT-38) calculator for exchange exports."""
