"""Client-side services built on the engine boundary."""
