"""What-if scenario records."""
