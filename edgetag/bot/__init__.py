"""Computer opponents, one module per difficulty level."""
