"""Third-party material price cache."""
