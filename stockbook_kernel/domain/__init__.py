"""Domain values, records and clock for the stockbook kernel."""
