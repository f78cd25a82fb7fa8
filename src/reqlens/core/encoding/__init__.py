"""Wire encoders for metrics and logs."""
